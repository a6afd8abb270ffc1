class PaymentError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, details="", *, error=None):
        super().__init__(details or error or self.error)
        self.details = details
        if error:
            self.error = error

    def as_dict(self) -> dict:
        return {"error": self.error, "details": self.details}


class ValidationError(PaymentError):
    status_code = 400
    error = "Missing required fields"

    def __init__(self, details="", *, error=None, required=None):
        super().__init__(details, error=error)
        self.required = list(required or [])

    def as_dict(self) -> dict:
        data = super().as_dict()
        if self.required:
            data["required"] = self.required
        return data


class LedgerWriteError(PaymentError):
    error = "Failed to create payment record"


class GatewayError(PaymentError):
    error = "Payment gateway error"


class OrderNotFound(PaymentError):
    status_code = 404
    error = "Payment not found"


class InvalidTransition(PaymentError):
    status_code = 409
    error = "Invalid payment status transition"
