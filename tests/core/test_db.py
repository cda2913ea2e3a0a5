"""Tests for the persistence gateway."""

from datetime import UTC, datetime, timedelta

import pytest

from core import db
from core.models import Channel, ScriptRecord, TopicRecord, VideoRecord, YouTubeUpload


class TestPatch:
    def test_rejects_unknown_columns(self, database):
        with pytest.raises(ValueError, match="not_a_column"):
            db.update_row(VideoRecord, "missing", db.Patch.of(not_a_column=1))

    def test_empty_patch_is_noop(self, database):
        assert db.update_row(VideoRecord, "missing", db.Patch()) is False

    def test_explicit_none_clears_column(self, make_channel):
        channel = make_channel()
        updated = db.update_row(Channel, channel.id, db.Patch.of(youtube_scope="x"))
        assert updated is True
        db.update_row(Channel, channel.id, db.Patch.of(youtube_scope=None))
        assert db.get_channel(channel.id).youtube_scope is None


class TestExecutions:
    def test_lifecycle(self, database):
        execution_id = db.start_execution()
        assert db.get_execution(execution_id).status == "running"

        db.complete_execution(execution_id, 12)

        execution = db.get_execution(execution_id)
        assert execution.status == "completed"
        assert execution.duration_seconds == 12
        assert execution.completed_at is not None

    def test_fail(self, database):
        execution_id = db.start_execution()
        db.fail_execution(execution_id, "boom")

        execution = db.get_execution(execution_id)
        assert execution.status == "failed"
        assert execution.error_message == "boom"


class TestUpserts:
    def test_topic_upsert_on_id(self, database, count_rows):
        for description in ("first", "second"):
            db.save_topic(
                topic_id="octopus-hearts",
                title="Octopus hearts",
                description=description,
                image_keywords=None,
                video_keywords=None,
                execution_id=None,
            )

        assert count_rows(TopicRecord) == 1
        assert db.topic_title_exists("OCTOPUS HEARTS")
        assert not db.topic_title_exists("Squid ink")

    def test_script_upsert_on_topic_and_language(self, database, count_rows):
        kwargs = dict(
            topic_id="octopus-hearts",
            title="Octopus",
            narrative="Three hearts.",
            description=None,
            tags=["a"],
            estimated_duration=1,
        )
        first = db.save_script(language="es", **kwargs)
        second = db.save_script(language="es", **{**kwargs, "narrative": "Three hearts, blue blood."})
        other = db.save_script(language="en", **kwargs)

        assert first == second
        assert other != first
        assert count_rows(ScriptRecord) == 2
        assert db.get_script(first).word_count == 4

    def test_youtube_upload_upsert_on_remote_id(self, make_channel, make_video, tmp_path, count_rows):
        video_id = make_video(make_channel(), tmp_path)
        kwargs = dict(video_id=video_id, youtube_video_id="abc123", channel="es")

        first = db.save_youtube_upload(youtube_url="https://youtu.be/abc123", title="t1", **kwargs)
        second = db.save_youtube_upload(youtube_url="https://youtu.be/abc123", title="t2", **kwargs)

        assert first == second
        assert count_rows(YouTubeUpload) == 1


class TestUploadStatus:
    def test_failure_increments_attempts(self, make_channel, make_video, tmp_path):
        video_id = make_video(make_channel(), tmp_path, upload_status="pending", upload_attempts=0)

        db.mark_upload_failed(video_id, "Network error")
        db.mark_upload_failed(video_id, "quotaExceeded", is_quota=True)

        video = db.get_video(video_id)
        assert video.upload_status == "quota_exceeded"
        assert video.upload_attempts == 2
        assert video.upload_error_message == "quotaExceeded"
        assert video.last_upload_attempt_at is not None

    def test_permanent_failure_pins_ceiling(self, make_channel, make_video, tmp_path, override_settings):
        override_settings(max_upload_attempts=5)
        video_id = make_video(make_channel(), tmp_path, upload_attempts=1)

        db.mark_upload_failed(video_id, "Channel disabled", permanent=True)

        assert db.get_video(video_id).upload_attempts == 5

    def test_success_clears_error(self, make_channel, make_video, tmp_path):
        video_id = make_video(make_channel(), tmp_path)

        db.mark_upload_success(video_id)

        video = db.get_video(video_id)
        assert video.upload_status == "uploaded"
        assert video.upload_error_message is None


class TestRetryCandidates:
    def test_eligibility(self, make_channel, make_video, tmp_path, override_settings):
        override_settings(quota_cooldown_hours=24, max_upload_attempts=5)
        now = datetime.now(UTC)
        channel = make_channel()

        recent_quota = make_video(
            channel, tmp_path, upload_status="quota_exceeded", last_upload_attempt_at=now - timedelta(hours=1)
        )
        old_quota = make_video(
            channel, tmp_path, upload_status="quota_exceeded", last_upload_attempt_at=now - timedelta(hours=25)
        )
        failed = make_video(channel, tmp_path, last_upload_attempt_at=now - timedelta(minutes=5))
        exhausted = make_video(channel, tmp_path, upload_attempts=5)
        pending = make_video(channel, tmp_path, upload_status="pending", upload_attempts=0)
        uploaded = make_video(channel, tmp_path, upload_status="uploaded")

        ids = {c.video_id for c in db.get_retry_candidates(now=now)}

        assert old_quota in ids
        assert failed in ids
        assert recent_quota not in ids
        assert exhausted not in ids
        assert pending not in ids
        assert uploaded not in ids

    def test_order_never_attempted_first(self, make_channel, make_video, tmp_path):
        now = datetime.now(UTC)
        channel = make_channel()
        older = make_video(channel, tmp_path, last_upload_attempt_at=now - timedelta(hours=3))
        newer = make_video(channel, tmp_path, last_upload_attempt_at=now - timedelta(hours=1))
        never = make_video(channel, tmp_path, last_upload_attempt_at=None)

        ids = [c.video_id for c in db.get_retry_candidates(now=now)]

        assert ids == [never, older, newer]

    def test_batch_limit(self, make_channel, make_video, tmp_path, override_settings):
        override_settings(retry_batch_size=2)
        channel = make_channel()
        for _ in range(3):
            make_video(channel, tmp_path)

        assert len(db.get_retry_candidates()) == 2

    def test_requires_channel_token(self, make_channel, make_video, tmp_path):
        video_id = make_video(make_channel(with_token=False), tmp_path)

        assert db.get_retry_candidates() == []
        assert [c.video_id for c in db.get_retry_candidates(require_access_token=False)] == [video_id]

    def test_candidate_carries_script_metadata(self, make_channel, make_video, tmp_path):
        make_video(make_channel("en"), tmp_path, title="Octopus hearts")

        (candidate,) = db.get_retry_candidates()

        assert candidate.script_title == "Octopus hearts"
        assert candidate.script_description == "A short fact."
        assert candidate.script_tags == ("octopus", "ocean")
        assert candidate.language == "en"

    def test_auth_blocked_until_reauthorized(self, make_channel, make_video, tmp_path):
        channel = make_channel()
        video_id = make_video(
            channel, tmp_path, upload_error_message=f"{db.AUTH_REQUIRED_PREFIX} invalid_grant"
        )
        assert db.get_retry_candidates() == []

        # Refresh without a new refresh token is not a re-authorization.
        db.update_channel_tokens(channel.id, access_token="new-access")
        assert db.get_retry_candidates() == []

        db.update_channel_tokens(channel.id, access_token="new-access", refresh_token="new-refresh")

        assert [c.video_id for c in db.get_retry_candidates()] == [video_id]
        assert db.get_video(video_id).upload_error_message is None
        assert db.get_channel(channel.id).youtube_refresh_token == "new-refresh"


class TestChannels:
    def test_active_channels_and_groups(self, make_group, make_channel):
        group_id = make_group()
        grouped = make_channel("es", group_id=group_id)
        make_channel("en", group_id=group_id, enabled=False)
        independent = make_channel("en")

        active = {c.id for c in db.get_active_channels()}
        assert active == {grouped.id, independent.id}
        assert [c.id for c in db.get_channels_by_group(group_id)] == [grouped.id]

    def test_prompts_filtered_by_type(self, make_channel):
        channel = make_channel()

        (topic_prompt,) = db.get_channel_prompts(channel.id, "topic")
        assert topic_prompt.prompt_text == "Pick a surprising fact."
        assert len(db.get_channel_prompts(channel.id)) == 2


class TestTelemetry:
    def test_error_log_and_resource_usage(self, database):
        execution_id = db.start_execution()

        db.log_error("group_failed", "boom", execution_id=execution_id, context={"group_id": "g1"})
        db.save_resource_usage(execution_id, llm_tokens_total=30, storage_used_mb=1.5)

        (error,) = db.get_execution_errors(execution_id)
        assert error.error_type == "group_failed"
        assert error.context == {"group_id": "g1"}

    def test_health(self, database):
        assert db.check_health() is True
