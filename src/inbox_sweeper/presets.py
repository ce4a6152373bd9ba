"""Built-in and custom presets, and the current selection."""

from __future__ import annotations

import uuid

from .constants import (
    DEFAULT_MIN_BODY,
    DEFAULT_MIN_SUBJECT_OR_SENDER,
    KEY_CURRENT_PRESET,
    KEY_CUSTOM_PRESETS,
)
from .models import RuleSet
from .storage import Storage


class PresetError(ValueError):
    """Invalid preset data or unknown preset id."""


BUILTIN_PRESETS: tuple[RuleSet, ...] = (
    RuleSet(
        id="promotional",
        name="Promotional",
        description="Filter and delete promotional offers, deals, and marketing emails.",
        keywords=(
            "sale", "discount", "deal", "promo", "limited time", "special offer",
            "bestseller", "coupon", "clearance", "exclusive", "flash sale", "save big",
            "bundle", "subscribe", "register now", "buy now", "bonus", "lowest price",
            "free shipping", "gift card",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=2,
    ),
    RuleSet(
        id="social_media",
        name="Social Media",
        description="Filter and delete social media notifications, updates, and messages.",
        keywords=(
            "Facebook", "Twitter", "Instagram", "LinkedIn", "Snapchat", "TikTok",
            "Swiggy", "Zomato", "Reddit", "Pinterest", "YouTube", "WhatsApp",
            "Telegram", "Discord", "Jio", "Spotify", "Uber", "Snapdeal", "HDFC",
            "ICICI", "Axis Bank", "Paytm", "Amazon", "Flipkart", "Myntra",
            "BookMyShow", "Ola", "Blinkit", "Zepto", "Instamart",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=1,
    ),
    RuleSet(
        id="likely_spam",
        name="Likely Spam",
        description="Auto-delete spammy and suspicious emails.",
        keywords=(
            "win", "prize", "lottery", "claim now", "urgent", "risk free", "guaranteed",
            "click here", "unsubscribe", "selected", "money", "miracle", "easy income",
            "no cost", "get rich", "act now", "confidential", "final notice",
            "urgent response", "investment scheme", "100% safe", "work from home",
            "you've been selected",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=3,
    ),
    RuleSet(
        id="temporary_otp",
        name="OTP & Security",
        description="Delete temporary login OTP and authentication-related emails.",
        keywords=(
            "otp", "verification code", "one time password", "login attempt",
            "security code", "PIN", "auth code", "access code", "password reset",
            "device login", "new device", "2FA", "multi-factor", "login alert",
            "temporary code", "expires in", "valid for", "do not share",
            "session code", "identity verification",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=2,
    ),
    RuleSet(
        id="job_alerts",
        name="Job Alerts",
        description="Clear job listings, recruitment emails and career site updates.",
        keywords=(
            "job", "career", "apply now", "interview", "resume", "CV", "hiring",
            "vacancy", "recruitment", "opportunity", "job match", "placement",
            "walk-in", "HR", "Shine", "Naukri", "LinkedIn", "Talent Acquisition",
            "Confidential Careers", "opening", "recruiter",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=2,
    ),
    RuleSet(
        id="ai_news",
        name="AI & Tech News",
        description="Auto-remove AI and tech newsletters or digest emails.",
        keywords=(
            "ChatGPT", "AI update", "machine learning", "data science", "newsletter",
            "Generative AI", "AI trends", "neural network", "deep learning",
            "AI project", "AI course", "automation", "robotics", "Serverless",
            "WebRTC", "TWIML", "AI jobs", "ML", "tech news", "AI research", "NLP",
            "vision", "Voice AI", "Deep Dive", "Tech Talent",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=2,
    ),
    RuleSet(
        id="finance_reports",
        name="Finance & Reports",
        description="Remove emails about financial statements, reports, and stock alerts.",
        keywords=(
            "NSDL", "dividend", "annual report", "quarterly earnings", "portfolio update",
            "financial report", "investment", "NSE", "BSE", "market summary", "IPO",
            "tax", "audit", "balance sheet", "mutual fund", "shareholder", "profit",
            "loss", "expense", "income", "cash flow", "trading alert",
            "IndusInd Bank", "CBSSBI ALERT",
        ),
        min_subject_or_sender_matches=1,
        min_body_matches=2,
    ),
)

_BUILTIN_IDS = {p.id for p in BUILTIN_PRESETS}


def new_custom_id() -> str:
    return f"custom_{uuid.uuid4().hex}"


def validate(preset: RuleSet) -> None:
    if not preset.name.strip():
        raise PresetError("Please enter a preset name")
    if not preset.keywords:
        raise PresetError("Please add at least one keyword")
    if preset.min_subject_or_sender_matches < 0 or preset.min_body_matches < 0:
        raise PresetError("Match thresholds cannot be negative")


class PresetStore:
    """Custom preset CRUD and current selection, persisted in ``Storage``."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def custom_presets(self) -> list[RuleSet]:
        return [RuleSet.from_dict(d) for d in self.storage.get(KEY_CUSTOM_PRESETS, [])]

    def all_presets(self) -> list[RuleSet]:
        return list(BUILTIN_PRESETS) + self.custom_presets()

    def get(self, preset_id: str) -> RuleSet | None:
        for preset in self.all_presets():
            if preset.id == preset_id:
                return preset
        return None

    def get_current(self) -> RuleSet | None:
        """Return the selected preset, or None if nothing (valid) is selected."""
        current_id = self.storage.get(KEY_CURRENT_PRESET)
        if not current_id:
            return None
        return self.get(current_id)

    def set_current(self, preset_id: str) -> RuleSet:
        preset = self.get(preset_id)
        if preset is None:
            raise PresetError(f"Unknown preset: {preset_id}")
        self.storage.set(KEY_CURRENT_PRESET, preset_id)
        return preset

    def has_current(self) -> bool:
        return self.get_current() is not None

    def create(
        self,
        name: str,
        keywords,
        description: str = "",
        min_subject_or_sender_matches: int = DEFAULT_MIN_SUBJECT_OR_SENDER,
        min_body_matches: int = DEFAULT_MIN_BODY,
    ) -> RuleSet:
        preset = RuleSet(
            id=new_custom_id(),
            name=name.strip(),
            description=description.strip() or "Custom preset",
            keywords=tuple(k.strip() for k in keywords if k.strip()),
            min_subject_or_sender_matches=min_subject_or_sender_matches,
            min_body_matches=min_body_matches,
        )
        self.save_custom(preset)
        return preset

    def save_custom(self, preset: RuleSet) -> None:
        validate(preset)
        if preset.id in _BUILTIN_IDS:
            raise PresetError(f"'{preset.id}' is a built-in preset id")
        presets = self.custom_presets()
        presets.append(preset)
        self._write(presets)

    def update_custom(self, preset_id: str, updated: RuleSet) -> bool:
        """Replace a custom preset. The id cannot change."""
        validate(updated)
        if preset_id in _BUILTIN_IDS:
            raise PresetError(f"'{preset_id}' is a built-in preset id")
        if updated.id != preset_id:
            raise PresetError(f"Preset id cannot change from '{preset_id}' to '{updated.id}'")
        presets = self.custom_presets()
        for idx, preset in enumerate(presets):
            if preset.id == preset_id:
                presets[idx] = updated
                self._write(presets)
                return True
        return False

    def delete_custom(self, preset_id: str) -> bool:
        """Delete a custom preset; clears the selection if it pointed at it."""
        presets = self.custom_presets()
        remaining = [p for p in presets if p.id != preset_id]
        if len(remaining) == len(presets):
            return False

        self._write(remaining)
        if self.storage.get(KEY_CURRENT_PRESET) == preset_id:
            self.storage.delete(KEY_CURRENT_PRESET)
        return True

    def is_custom(self, preset_id: str) -> bool:
        return any(p.id == preset_id for p in self.custom_presets())

    def summary(self, preset: RuleSet) -> str:
        custom_label = " (Custom)" if self.is_custom(preset.id) else ""
        return (
            f"{len(preset.keywords)} keywords, "
            f"{preset.min_subject_or_sender_matches} subject+sender matches, "
            f"{preset.min_body_matches} body matches{custom_label}"
        )

    def _write(self, presets: list[RuleSet]) -> None:
        self.storage.set(KEY_CUSTOM_PRESETS, [p.to_dict() for p in presets])
