"""Detection rule tables for network classification and consent banners."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NetworkPattern(BaseModel):
    """Regular expression identifying one affiliate network."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Network name reported on match")
    pattern: str = Field(..., description="Case-insensitive regular expression")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Ensure the pattern compiles."""
        try:
            re.compile(v, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {v!r}: {e}") from e
        return v


DEFAULT_NETWORK_PATTERNS: tuple[NetworkPattern, ...] = (
    NetworkPattern(name="awin", pattern=r"awin1\.com|awltovhc\.com|zenaps\.com"),
    NetworkPattern(
        name="cj", pattern=r"(dpbolvw|jdoqocy|tkqlhce|anrdoezrs|kqzyfj)\.(net|com)"
    ),
    NetworkPattern(
        name="rakuten", pattern=r"click\.linksynergy\.com|linksynergy\.walmart"
    ),
    NetworkPattern(name="impact", pattern=r"impact\.com|\.sjv\.io|\.evyy\.net"),
    NetworkPattern(name="shareasale", pattern=r"shareasale\.com|shrsl\.com"),
    NetworkPattern(name="amazon", pattern=r"amazon\.[a-z.]+.*[?&]tag=|amzn\.to"),
)

DEFAULT_BANNER_SELECTORS: tuple[str, ...] = (
    "#onetrust-banner-sdk",
    "#onetrust-consent-sdk",
    "#CybotCookiebotDialog",
    "#usercentrics-root",
    ".qc-cmp2-container",
    "#didomi-notice",
    "#truste-consent-track",
    "#cmpbox",
    ".fc-consent-root",
    "#cookie-law-info-bar",
    ".cc-window",
    "[id*='cookie-banner']",
    "[class*='cookie-consent']",
    "[aria-label*='cookie' i]",
)

DEFAULT_ACCEPT_SELECTORS: tuple[str, ...] = (
    "#onetrust-accept-btn-handler",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "#CybotCookiebotDialogBodyButtonAccept",
    "button[data-testid='uc-accept-all-button']",
    ".qc-cmp2-summary-buttons button[mode='primary']",
    "#didomi-notice-agree-button",
    "#truste-consent-button",
    "#cmpbntyestxt",
    ".fc-cta-consent",
    "#cookie_action_close_header",
    ".cc-btn.cc-allow",
)

DEFAULT_ACCEPT_TEXTS: tuple[str, ...] = (
    "accept all",
    "accept all cookies",
    "allow all",
    "accept",
    "agree",
    "i agree",
    "got it",
    "alle akzeptieren",
    "tout accepter",
    "aceptar todo",
    "accetta tutto",
)


class DetectionRules(BaseModel):
    """Immutable set of tables injected into the classifier and consent engine."""

    model_config = ConfigDict(frozen=True)

    networks: tuple[NetworkPattern, ...] = Field(default=DEFAULT_NETWORK_PATTERNS)
    banner_selectors: tuple[str, ...] = Field(default=DEFAULT_BANNER_SELECTORS)
    accept_selectors: tuple[str, ...] = Field(default=DEFAULT_ACCEPT_SELECTORS)
    accept_texts: tuple[str, ...] = Field(
        default=DEFAULT_ACCEPT_TEXTS,
        description="Button labels treated as accept, matched case-insensitively",
    )
