from paylink.schemas.schemas import CreatePaymentRequest, CreatePaymentResponse, ErrorResponse

__all__ = ["CreatePaymentRequest", "CreatePaymentResponse", "ErrorResponse"]
