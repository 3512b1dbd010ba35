from registration.providers import DemoOtpProvider


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SequenceOtpProvider(DemoOtpProvider):
    """Demo provider with no delay that hands out predictable OTPs."""

    def __init__(self, otps=("123456", "654321", "111222", "333444")):
        self._otps = list(otps)
        self.calls = 0
        super().__init__(delay_seconds=0, otp_factory=self._next)

    def _next(self) -> str:
        otp = self._otps[self.calls % len(self._otps)]
        self.calls += 1
        return otp


class StaticLookup:
    def __init__(self, location=None):
        self.location = location
        self.requested = []

    def lookup(self, pin_code):
        self.requested.append(pin_code)
        return self.location


