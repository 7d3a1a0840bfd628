"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("booking_engine.config")


class Settings(BaseSettings):
    # Slot enumeration
    slot_interval_minutes: int = 15
    default_booking_duration: int = 30

    # Calendar geometry (drag-to-reschedule)
    calendar_pixels_per_hour: float = 52.0
    calendar_start_hour: int = 8
    calendar_end_hour: int = 21
    calendar_sidebar_width: float = 64.0
    calendar_reversed_columns: bool = True

    # Waiting list defaults for entries with missing fields
    waiting_list_default_from: str = "00:00"
    waiting_list_default_to: str = "23:59"
    waiting_list_default_duration: int = 30

    # Notifier (WhatsApp / SMS gateway)
    notifier_url: str = ""
    notifier_timeout_seconds: float = 15.0

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if not 0 <= self.calendar_start_hour < self.calendar_end_hour <= 24:
            raise ValueError(
                "CALENDAR_START_HOUR must be before CALENDAR_END_HOUR "
                f"(got {self.calendar_start_hour} and {self.calendar_end_hour})."
            )
        if self.calendar_pixels_per_hour <= 0:
            raise ValueError("CALENDAR_PIXELS_PER_HOUR must be positive.")
        if self.slot_interval_minutes <= 0 or 60 % self.slot_interval_minutes:
            raise ValueError(
                "SLOT_INTERVAL_MINUTES must be a positive divisor of 60 "
                f"(got {self.slot_interval_minutes})."
            )

        # Admin API key, warn if unset
        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        if not self.notifier_url:
            warnings.append(
                "NOTIFIER_URL not set — waiting-list notifications will be skipped."
            )

        return warnings


settings = Settings()
