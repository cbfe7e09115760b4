class NotFound(Exception): ...
class BusinessRuleError(Exception): ...
class ValidationFailed(Exception): ...
class PaymentVerificationError(Exception): ...
class GatewayError(Exception): ...


class InsufficientBalance(BusinessRuleError):
    def __init__(self, required_minor: int, available_minor: int):
        self.required_minor = required_minor
        self.available_minor = available_minor
        super().__init__(
            f"Insufficient wallet balance: required {required_minor}, available {available_minor}"
        )


class AlreadyPaid(BusinessRuleError): ...
class StepOrderError(BusinessRuleError): ...
class DuplicateOrderNumber(BusinessRuleError): ...
