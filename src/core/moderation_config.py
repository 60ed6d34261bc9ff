"""
Case Warden - Moderation Configuration
======================================

Value objects for moderation rules and a provider with hot-reload
notifications.

DESIGN:
    ModerationConfig is frozen. A reload builds a new snapshot and swaps
    it in, so a message being scanned never sees half-applied settings.
    from_dict() accepts snake_case or camelCase keys and clamps every
    number into its allowed range, falling back to defaults on garbage.

    Reading and writing config files belongs to the host; the provider
    only holds the current snapshot and tells subscribers when it changes.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from src.core.constants import SPAM_WINDOW_DEFAULT, SPAM_WINDOW_MIN
from src.core.logger import logger


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_DM_TEMPLATES: Dict[str, str] = {
    "warn": "You received a warning in {guild}. Reason: {reason}",
    "timeout": "You have been timed out in {guild} for {duration} minutes. Reason: {reason}",
    "kick": "You have been removed from {guild}. Reason: {reason}",
    "ban": "You have been banned from {guild}. Reason: {reason}",
}


# =============================================================================
# Parsing Helpers
# =============================================================================

def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present key (snake_case first, then aliases)."""
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _clamp(value: Any, min_val: float, max_val: float, default: float) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(max(number, min_val), max_val)


def _clamp_int(value: Any, min_val: int, max_val: int, default: int) -> int:
    return int(_clamp(value, min_val, max_val, default))


def _bool(value: Any, default: bool) -> bool:
    return default if value is None else bool(value)


def _sanitize_id(value: Any) -> Optional[str]:
    """Keep Discord-style numeric IDs, drop everything else."""
    if value is None or value == "":
        return None
    text = str(value).strip()
    return text if text.isdigit() else None


def _id_set(values: Any) -> FrozenSet[str]:
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(i for i in (_sanitize_id(v) for v in values) if i)


def _word_list(values: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        return default
    return tuple(str(v).strip() for v in values if v is not None and str(v).strip())


# =============================================================================
# Sections
# =============================================================================

@dataclass(frozen=True)
class FilterConfig:
    """Content filters applied by the violation scanner."""

    links: bool = True
    invites: bool = True
    media: bool = False
    profanity: bool = True
    custom_keywords: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FilterConfig":
        d = cls()
        return cls(
            links=_bool(_pick(raw, "links"), d.links),
            invites=_bool(_pick(raw, "invites"), d.invites),
            media=_bool(_pick(raw, "media"), d.media),
            profanity=_bool(_pick(raw, "profanity"), d.profanity),
            custom_keywords=_word_list(
                _pick(raw, "custom_keywords", "customKeywords"), d.custom_keywords
            ),
        )


@dataclass(frozen=True)
class SpamLimits:
    """Per-window limits for the multi-signal spam check. 0 disables a signal."""

    window_sec: int = SPAM_WINDOW_DEFAULT
    messages: int = 0
    mentions: int = 0
    links: int = 0
    emojis: int = 0
    attachments: int = 0

    @property
    def window_ms(self) -> int:
        return self.window_sec * 1000

    @property
    def enabled(self) -> bool:
        return any((self.messages, self.mentions, self.links, self.emojis, self.attachments))

    def limit_for(self, signal: str) -> int:
        return getattr(self, signal, 0)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SpamLimits":
        d = cls()
        return cls(
            window_sec=_clamp_int(_pick(raw, "window_sec", "windowSec"), SPAM_WINDOW_MIN, 300, d.window_sec),
            messages=_clamp_int(_pick(raw, "messages"), 0, 1000, 0),
            mentions=_clamp_int(_pick(raw, "mentions"), 0, 1000, 0),
            links=_clamp_int(_pick(raw, "links"), 0, 1000, 0),
            emojis=_clamp_int(_pick(raw, "emojis"), 0, 1000, 0),
            attachments=_clamp_int(_pick(raw, "attachments"), 0, 1000, 0),
        )


@dataclass(frozen=True)
class SpamConfig:
    messages_per_minute: int = 8
    auto_timeout_minutes: int = 10
    limits: SpamLimits = field(default_factory=SpamLimits)

    @property
    def enabled(self) -> bool:
        return self.messages_per_minute > 0 or self.limits.enabled

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SpamConfig":
        d = cls()
        limits = _pick(raw, "limits")
        return cls(
            messages_per_minute=_clamp_int(
                _pick(raw, "messages_per_minute", "messagesPerMinute"), 0, 120, d.messages_per_minute
            ),
            auto_timeout_minutes=_clamp_int(
                _pick(raw, "auto_timeout_minutes", "autoTimeoutMinutes"), 1, 10_080, d.auto_timeout_minutes
            ),
            limits=SpamLimits.from_dict(limits if isinstance(limits, Mapping) else {}),
        )


@dataclass(frozen=True)
class EscalationConfig:
    """Thresholds for automatic escalation. 0 disables a rule."""

    warn_threshold: int = 2
    timeout_threshold: int = 3
    ban_threshold: int = 5

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "EscalationConfig":
        d = cls()
        return cls(
            warn_threshold=_clamp_int(_pick(raw, "warn_threshold", "warnThreshold"), 0, 10, d.warn_threshold),
            timeout_threshold=_clamp_int(
                _pick(raw, "timeout_threshold", "timeoutThreshold"), 0, 10, d.timeout_threshold
            ),
            ban_threshold=_clamp_int(_pick(raw, "ban_threshold", "banThreshold"), 0, 15, d.ban_threshold),
        )


@dataclass(frozen=True)
class AlertConfig:
    log_channel_id: Optional[str] = None
    staff_role_id: Optional[str] = None
    notify_on_auto_action: bool = True

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AlertConfig":
        return cls(
            log_channel_id=_sanitize_id(_pick(raw, "log_channel_id", "logChannelId")),
            staff_role_id=_sanitize_id(_pick(raw, "staff_role_id", "staffRoleId")),
            notify_on_auto_action=_bool(_pick(raw, "notify_on_auto_action", "notifyOnAutoAction"), True),
        )


@dataclass(frozen=True)
class SupportConfig:
    intake_channel_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SupportConfig":
        return cls(intake_channel_id=_sanitize_id(_pick(raw, "intake_channel_id", "intakeChannelId")))


@dataclass(frozen=True)
class ScopeConfig:
    """Allow-lists that exempt channels, roles or users from automod."""

    channel_allow: FrozenSet[str] = frozenset()
    role_allow: FrozenSet[str] = frozenset()
    user_allow: FrozenSet[str] = frozenset()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ScopeConfig":
        return cls(
            channel_allow=_id_set(_pick(raw, "channel_allow", "channelAllow")),
            role_allow=_id_set(_pick(raw, "role_allow", "roleAllow")),
            user_allow=_id_set(_pick(raw, "user_allow", "userAllow")),
        )


@dataclass(frozen=True)
class DmTemplates:
    warn: str = DEFAULT_DM_TEMPLATES["warn"]
    timeout: str = DEFAULT_DM_TEMPLATES["timeout"]
    kick: str = DEFAULT_DM_TEMPLATES["kick"]
    ban: str = DEFAULT_DM_TEMPLATES["ban"]

    def for_action(self, action: str) -> Optional[str]:
        return getattr(self, action, None)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DmTemplates":
        values = {}
        for key, default in DEFAULT_DM_TEMPLATES.items():
            value = raw.get(key)
            values[key] = value.strip() if isinstance(value, str) and value.strip() else default
        return cls(**values)


# =============================================================================
# Root Config
# =============================================================================

@dataclass(frozen=True)
class ModerationConfig:
    """Immutable snapshot of every moderation rule."""

    filters: FilterConfig = field(default_factory=FilterConfig)
    spam: SpamConfig = field(default_factory=SpamConfig)
    escalation: EscalationConfig = field(default_factory=EscalationConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    support: SupportConfig = field(default_factory=SupportConfig)
    scopes: ScopeConfig = field(default_factory=ScopeConfig)
    dm_templates: DmTemplates = field(default_factory=DmTemplates)

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]] = None) -> "ModerationConfig":
        """Merge a partial dict over defaults. Unknown keys are ignored."""
        raw = raw or {}

        def section(*keys: str) -> Mapping[str, Any]:
            value = _pick(raw, *keys)
            return value if isinstance(value, Mapping) else {}

        return cls(
            filters=FilterConfig.from_dict(section("filters")),
            spam=SpamConfig.from_dict(section("spam")),
            escalation=EscalationConfig.from_dict(section("escalation")),
            alerts=AlertConfig.from_dict(section("alerts")),
            support=SupportConfig.from_dict(section("support")),
            scopes=ScopeConfig.from_dict(section("scopes")),
            dm_templates=DmTemplates.from_dict(section("dm_templates", "dmTemplates")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["filters"]["custom_keywords"] = list(self.filters.custom_keywords)
        data["scopes"] = {key: sorted(value) for key, value in data["scopes"].items()}
        return data


# =============================================================================
# Provider
# =============================================================================

ConfigListener = Callable[[ModerationConfig], None]


def _deep_merge(base: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ModerationConfigProvider:
    """
    Holds the current ModerationConfig and notifies subscribers on change.

    DESIGN:
        Consumers read `current` per operation instead of caching the
        snapshot, so a reload takes effect on the next message.
    """

    def __init__(self, config: Optional[ModerationConfig] = None) -> None:
        self._config = config or ModerationConfig()
        self._listeners: List[ConfigListener] = []

    @property
    def current(self) -> ModerationConfig:
        return self._config

    def on_change(self, listener: ConfigListener) -> Callable[[], None]:
        """Subscribe to config changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def replace(self, config: ModerationConfig) -> ModerationConfig:
        """Swap in a complete snapshot."""
        self._config = config
        self._notify()
        return config

    def load(self, raw: Optional[Mapping[str, Any]]) -> ModerationConfig:
        """Replace the snapshot from a raw dict (e.g. freshly read by the host)."""
        return self.replace(ModerationConfig.from_dict(raw))

    def update(self, partial: Mapping[str, Any]) -> ModerationConfig:
        """Deep-merge a partial dict into the current snapshot."""
        merged = _deep_merge(self._config.to_dict(), partial)
        return self.replace(ModerationConfig.from_dict(merged))

    def _notify(self) -> None:
        spam = self._config.spam
        logger.tree("Moderation Config Reloaded", [
            ("Filters", ", ".join(
                name for name in ("links", "invites", "media", "profanity")
                if getattr(self._config.filters, name)
            ) or "none"),
            ("Spam", f"{spam.messages_per_minute}/min, window {spam.limits.window_sec}s"),
            ("Escalation", "warn {0.warn_threshold} / timeout {0.timeout_threshold} / ban {0.ban_threshold}".format(
                self._config.escalation
            )),
        ], emoji="⚙️")

        for listener in list(self._listeners):
            try:
                listener(self._config)
            except Exception as e:
                logger.warning("Moderation Config Listener Failed", [
                    ("Error Type", type(e).__name__),
                    ("Error", str(e)[:100]),
                ])


__all__ = [
    "DEFAULT_DM_TEMPLATES",
    "FilterConfig",
    "SpamLimits",
    "SpamConfig",
    "EscalationConfig",
    "AlertConfig",
    "SupportConfig",
    "ScopeConfig",
    "DmTemplates",
    "ModerationConfig",
    "ModerationConfigProvider",
]
