"""
Case Warden - Anti-Spam Tests
=============================

Tests for the per-minute bucket and the multi-signal window.
"""

from src.core.moderation_config import SpamConfig, SpamLimits
from src.services.antispam import SpamDetector, SpamSignals


KEY = ("1000", "2000")


def legacy_only(per_minute: int = 10) -> SpamConfig:
    return SpamConfig(messages_per_minute=per_minute)


def windowed(**limits) -> SpamConfig:
    return SpamConfig(messages_per_minute=0, limits=SpamLimits(window_sec=10, **limits))


class TestSpamSignals:
    """Tests for SpamSignals.from_content()."""

    def test_counts_links_and_emojis(self):
        """Test links and emojis are counted from content."""
        signals = SpamSignals.from_content(
            "see https://a.example and www.b.example 😀 <:wave:123>",
            mention_count=2,
            attachments_count=1,
        )
        assert signals.messages == 1
        assert signals.links == 2
        assert signals.emojis == 2
        assert signals.mentions == 2
        assert signals.attachments == 1

    def test_empty_content(self):
        """Test None content counts as a plain message."""
        signals = SpamSignals.from_content(None)
        assert signals.links == 0
        assert signals.emojis == 0


class TestLegacyBucket:
    """Tests for the per-minute message bucket."""

    def test_trips_after_limit(self):
        """Test the 11th message in a minute trips a limit of 10."""
        detector = SpamDetector()
        config = legacy_only(10)

        verdicts = [detector.observe(KEY, SpamSignals(), 100.0 + i, config) for i in range(11)]

        assert all(v is None for v in verdicts[:10])
        assert verdicts[10] is not None
        assert verdicts[10].signals == ("messages",)
        assert verdicts[10].counts == {"messages": 11}
        assert verdicts[10].window == "60s"
        assert "11 messages in 60 seconds" in verdicts[10].reason

    def test_bucket_cleared_after_trip(self):
        """Test the message after a trip does not re-trip."""
        detector = SpamDetector()
        config = legacy_only(10)
        for i in range(11):
            detector.observe(KEY, SpamSignals(), 100.0 + i, config)

        assert detector.observe(KEY, SpamSignals(), 112.0, config) is None

    def test_old_messages_expire(self):
        """Test messages older than a minute fall out of the bucket."""
        detector = SpamDetector()
        config = legacy_only(3)
        for i in range(3):
            detector.observe(KEY, SpamSignals(), 100.0 + i, config)

        assert detector.observe(KEY, SpamSignals(), 170.0, config) is None

    def test_members_are_independent(self):
        """Test buckets are keyed per member."""
        detector = SpamDetector()
        config = legacy_only(2)
        detector.observe(KEY, SpamSignals(), 100.0, config)
        detector.observe(KEY, SpamSignals(), 101.0, config)

        assert detector.observe(("1000", "2001"), SpamSignals(), 102.0, config) is None
        assert detector.observe(KEY, SpamSignals(), 103.0, config) is not None

    def test_disabled(self):
        """Test nothing trips when every limit is off."""
        detector = SpamDetector()
        config = SpamConfig(messages_per_minute=0)
        for i in range(50):
            assert detector.observe(KEY, SpamSignals(), 100.0 + i, config) is None
        assert len(detector) == 0


class TestWindowedLimits:
    """Tests for the multi-signal window."""

    def test_single_message_can_trip_links(self):
        """Test one message with more links than the limit trips by itself."""
        detector = SpamDetector()
        verdict = detector.observe(KEY, SpamSignals(links=6), 100.0, windowed(links=5))

        assert verdict is not None
        assert verdict.signals == ("links",)
        assert verdict.counts["links"] == 6
        assert verdict.window == "10s"
        assert verdict.to_metadata()["signals"] == ["links"]

    def test_emoji_spike_across_messages(self):
        """Test emoji counts accumulate across the window."""
        detector = SpamDetector()
        config = windowed(emojis=3)

        assert detector.observe(KEY, SpamSignals(emojis=2), 100.0, config) is None
        assert detector.observe(KEY, SpamSignals(emojis=2), 101.0, config) is None
        verdict = detector.observe(KEY, SpamSignals(emojis=2), 102.0, config)

        assert verdict is not None
        assert verdict.signals == ("emojis",)

    def test_window_expires(self):
        """Test signals older than the window are dropped."""
        detector = SpamDetector()
        config = windowed(mentions=1)

        assert detector.observe(KEY, SpamSignals(mentions=1), 100.0, config) is None
        assert detector.observe(KEY, SpamSignals(mentions=1), 120.0, config) is None

    def test_signal_absent_from_message_does_not_trip(self):
        """Test a signal only trips on a message that carries it."""
        detector = SpamDetector()
        config = windowed(links=1, messages=100)

        assert detector.observe(KEY, SpamSignals(links=1), 100.0, config) is None
        verdict = detector.observe(KEY, SpamSignals(), 101.0, config)

        assert verdict is None

    def test_legacy_checked_first(self):
        """Test the per-minute bucket short-circuits the window."""
        detector = SpamDetector()
        config = SpamConfig(messages_per_minute=1, limits=SpamLimits(window_sec=10, links=1))

        detector.observe(KEY, SpamSignals(), 100.0, config)
        verdict = detector.observe(KEY, SpamSignals(links=5), 101.0, config)

        assert verdict.signals == ("messages",)


class TestHousekeeping:
    """Tests for prune(), reset() and clear()."""

    def test_prune_idle_members(self):
        """Test idle members are dropped and active ones kept."""
        detector = SpamDetector()
        config = legacy_only(10)
        detector.observe(("1000", "1"), SpamSignals(), 100.0, config)
        detector.observe(("1000", "2"), SpamSignals(), 500.0, config)

        dropped = detector.prune(now=500.0, max_age=300)

        assert dropped == 1
        assert len(detector) == 1

    def test_reset_and_clear(self):
        """Test reset drops one member and clear drops all."""
        detector = SpamDetector()
        config = legacy_only(10)
        detector.observe(("1000", "1"), SpamSignals(), 100.0, config)
        detector.observe(("1000", "2"), SpamSignals(), 100.0, config)

        detector.reset(("1000", "1"))
        assert len(detector) == 1
        detector.clear()
        assert len(detector) == 0
