class TradeRejected(ValueError):
    """A player action the portfolio refused (bad amount, no balance, cooldown...)."""

    def __init__(self, message: str, code: str = "TRADE_REJECTED"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}
