"""
Application context - the long-lived service objects one app instance shares.
Built once in create_app() and stored on app.state.context.
"""
from smsdash.config import Settings
from smsdash.services.broadcaster import Broadcaster
from smsdash.services.carrier import TelnyxClient


class AppContext:
    def __init__(self, settings: Settings, broadcaster: Broadcaster, carrier: TelnyxClient):
        self.settings = settings
        self.broadcaster = broadcaster
        self.carrier = carrier

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        base_url = settings.app_base_url.rstrip("/")
        carrier = TelnyxClient(
            api_key=settings.telnyx_api_key,
            base_url=settings.telnyx_api_base_url,
            timeout=settings.telnyx_timeout_seconds,
            webhook_url=f"{base_url}/api/webhooks/telnyx" if base_url else None,
        )
        return cls(settings=settings, broadcaster=Broadcaster(), carrier=carrier)
