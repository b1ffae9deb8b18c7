"""PSP Adapter Dispatcher - Builds the correct PSP adapter for a gateway."""
from typing import Dict, Optional

from payrecon.config.settings import Settings, settings as default_settings
from payrecon.services.signature import SignatureVerifier
from .adapter import PSPAdapter, PSPProvider
from .cashfree_adapter import CashfreeAdapter
from .phonepe_adapter import PhonePeAdapter


class PSPDispatcher:
    """
    Selects and initializes PSP adapters from settings.
    Adapters are cached per provider so token state is reused; callers
    receive the instance and pass it on explicitly.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._adapters: Dict[str, PSPAdapter] = {}

    def get_adapter(self, provider: Optional[str] = None) -> PSPAdapter:
        """
        Get PSP adapter for the given provider (defaults to GATEWAY_PROVIDER).

        Raises:
            ValueError: If provider is not supported or credentials missing
        """
        provider = (provider or self.settings.GATEWAY_PROVIDER).lower()

        if provider in self._adapters:
            return self._adapters[provider]

        s = self.settings
        if provider == PSPProvider.CASHFREE.value:
            adapter: PSPAdapter = CashfreeAdapter(
                app_id=s.CASHFREE_APP_ID or "",
                secret_key=s.CASHFREE_SECRET_KEY or "",
                api_base=s.CASHFREE_API_BASE,
                api_version=s.CASHFREE_API_VERSION,
                timeout=s.GATEWAY_TIMEOUT_SECONDS,
                verifier=SignatureVerifier(encoding="base64", tolerance_seconds=s.WEBHOOK_TOLERANCE_SECONDS),
            )
        elif provider == PSPProvider.PHONEPE.value:
            adapter = PhonePeAdapter(
                client_id=s.PHONEPE_CLIENT_ID or "",
                client_secret=s.PHONEPE_CLIENT_SECRET or "",
                client_version=s.PHONEPE_CLIENT_VERSION,
                api_base=s.PHONEPE_API_BASE,
                callback_username=s.PHONEPE_CALLBACK_USERNAME,
                callback_password=s.PHONEPE_CALLBACK_PASSWORD,
                timeout=s.GATEWAY_TIMEOUT_SECONDS,
            )
        else:
            raise ValueError(f"Unsupported PSP provider: {provider}")

        self._adapters[provider] = adapter
        return adapter

    def register(self, adapter: PSPAdapter) -> None:
        """Install a prebuilt adapter (used by tests and custom deployments)."""
        self._adapters[adapter.provider.value] = adapter

    def clear_cache(self):
        """Clear cached adapters (useful for testing)."""
        self._adapters = {}
