from __future__ import annotations

from dataclasses import dataclass

from sobriety.storage import StorageService


@dataclass
class AppPreferences:
    """User preferences passed explicitly to whatever renders the app.

    ``theme_preference`` is ``light``, ``dark`` or ``system``.
    """

    theme_preference: str = "system"
    notifications_enabled: bool = False

    @classmethod
    async def load(cls, storage: StorageService) -> "AppPreferences":
        return cls(
            theme_preference=await storage.get_theme_preference(),
            notifications_enabled=await storage.get_notifications_enabled(),
        )

    async def save(self, storage: StorageService) -> None:
        await storage.set_theme_preference(self.theme_preference)
        await storage.set_notifications_enabled(self.notifications_enabled)

    def color_scheme(self, system_scheme: str | None = None) -> str:
        if self.theme_preference in ("light", "dark"):
            return self.theme_preference
        return system_scheme or "light"
