import json

from django.test import SimpleTestCase

from legalup.rut import check_digit, is_valid_rut, normalize_rut


class RutTests(SimpleTestCase):
    def test_normalize(self):
        self.assertEqual(normalize_rut("12.345.678-k"), "12345678K")
        self.assertEqual(normalize_rut(None), "")

    def test_check_digit(self):
        self.assertEqual(check_digit("12345678"), "5")
        self.assertEqual(check_digit("11111111"), "1")
        self.assertEqual(check_digit("10000013"), "K")

    def test_is_valid(self):
        self.assertTrue(is_valid_rut("12.345.678-5"))
        self.assertTrue(is_valid_rut("10000013-k"))
        self.assertFalse(is_valid_rut("12.345.678-4"))
        self.assertFalse(is_valid_rut("123-4"))
        self.assertFalse(is_valid_rut(""))


class VerifyRutViewTests(SimpleTestCase):
    def _post(self, payload):
        return self.client.post('/verify-rut', data=json.dumps(payload), content_type='application/json')

    def test_valid_rut(self):
        resp = self._post({"rut": "12.345.678-5"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"valid": True, "message": "RUT válido"})

    def test_invalid_rut(self):
        resp = self._post({"rut": "12.345.678-0"})
        self.assertEqual(resp.json()["valid"], False)

    def test_missing_rut(self):
        resp = self._post({})
        self.assertEqual(resp.status_code, 400)
