# app/core/capabilities.py
import enum

from fastapi import APIRouter, Depends

from core.exceptions import Unimplemented


class Capability(str, enum.Enum):
    """Features that are part of the public API contract but not built yet."""

    # auth
    GOOGLE_OAUTH = "google_oauth"
    FACEBOOK_OAUTH = "facebook_oauth"

    # donations
    RECURRING_DONATIONS = "recurring_donations"
    DONATION_CANCEL = "donation_cancel"
    DONATION_REFUND = "donation_refund"
    DONATION_RECEIPT = "donation_receipt"
    TAX_SUMMARY = "tax_summary"
    DONATION_ANALYTICS = "donation_analytics"
    PAYHERE_WEBHOOK = "payhere_webhook"

    # admin
    ADMIN_DONATIONS = "admin_donations"
    FLAGGED_DONATIONS = "flagged_donations"
    DONATION_VERIFICATION = "donation_verification"
    ADMIN_REFUNDS = "admin_refunds"
    FINANCIAL_REPORTS = "financial_reports"
    TAX_REPORTS = "tax_reports"
    AUDIT_REPORTS = "audit_reports"
    PLATFORM_OVERVIEW = "platform_overview"
    GROWTH_STATS = "growth_stats"
    PERFORMANCE_STATS = "performance_stats"
    ERROR_LOGS = "error_logs"
    DATA_EXPORT = "data_export"

    @property
    def label(self) -> str:
        return CAPABILITY_LABELS.get(self, self.value.replace("_", " ").capitalize())


CAPABILITY_LABELS = {
    Capability.GOOGLE_OAUTH: "Google OAuth",
    Capability.FACEBOOK_OAUTH: "Facebook OAuth",
    Capability.PAYHERE_WEBHOOK: "PayHere webhook",
    Capability.TAX_SUMMARY: "Tax summary",
    Capability.DATA_EXPORT: "Data export",
}


def unimplemented(capability: Capability):
    """Dependency that always answers 501 for the given capability."""

    async def dependency():
        raise Unimplemented(f"{capability.label} is not implemented yet", code=capability.value)

    return dependency


def add_unimplemented_route(router: APIRouter, method: str, path: str, capability: Capability, **kwargs):
    """Register a contract-stable stub route backed by the capability enum."""

    async def endpoint(_: None = Depends(unimplemented(capability))):
        return None

    endpoint.__name__ = f"{capability.value}_{method.lower()}_{path.strip('/').replace('/', '_').replace('{', '').replace('}', '') or 'root'}"
    router.add_api_route(path, endpoint, methods=[method.upper()], status_code=501, **kwargs)
