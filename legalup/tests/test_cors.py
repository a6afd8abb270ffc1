from django.test import SimpleTestCase, override_settings


@override_settings(CORS_ALLOWED_ORIGINS=["https://legalup.cl"])
class CorsMiddlewareTests(SimpleTestCase):
    def test_allowed_origin_gets_headers(self):
        resp = self.client.get('/', HTTP_ORIGIN='https://legalup.cl')
        self.assertEqual(resp["Access-Control-Allow-Origin"], "https://legalup.cl")
        self.assertEqual(resp["Access-Control-Allow-Credentials"], "true")

    def test_unknown_origin_gets_no_headers(self):
        resp = self.client.get('/', HTTP_ORIGIN='https://evil.example')
        self.assertFalse(resp.has_header("Access-Control-Allow-Origin"))

    def test_preflight(self):
        resp = self.client.options(
            '/create-payment',
            HTTP_ORIGIN='https://legalup.cl',
            HTTP_ACCESS_CONTROL_REQUEST_METHOD='POST',
        )
        self.assertEqual(resp.status_code, 204)
        self.assertIn("POST", resp["Access-Control-Allow-Methods"])

    def test_preflight_from_unknown_origin(self):
        resp = self.client.options(
            '/create-payment',
            HTTP_ORIGIN='https://evil.example',
            HTTP_ACCESS_CONTROL_REQUEST_METHOD='POST',
        )
        self.assertEqual(resp.status_code, 403)
