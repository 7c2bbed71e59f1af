"""Unit tests for wiring the metadata pipeline from settings."""

from unittest.mock import MagicMock, patch

import pytest


def test_build_queue_uses_configured_namespace(test_settings):
    from clubhouse.metadata_queue.runtime import build_queue

    settings = test_settings.model_copy(update={"metadata_queue_namespace": "staging_meta"})

    queue = build_queue(MagicMock(), settings)

    assert queue.pending_key == "staging_meta:pending"
    assert queue.processing_key == "staging_meta:processing"


def test_build_enqueuer_follows_feature_switch(test_settings):
    from clubhouse.metadata_queue.runtime import build_enqueuer

    settings = test_settings.model_copy(update={"link_metadata_enabled": False})

    enqueuer = build_enqueuer(MagicMock(), settings)

    assert enqueuer.should_enqueue("https://example.com") is False


def test_build_worker_runtime_requires_database(test_settings):
    from clubhouse.metadata_queue.runtime import build_worker_runtime

    settings = test_settings.model_copy(update={"postgres_host": None})

    with pytest.raises(ValueError):
        build_worker_runtime(settings)


@patch("clubhouse.metadata_queue.runtime.DatabaseSessionManager")
@patch("clubhouse.metadata_queue.runtime.create_redis_client")
def test_build_worker_runtime_wires_components(create_redis_client, session_manager_cls, test_settings):
    from clubhouse.metadata_queue.runtime import build_worker_runtime

    settings = test_settings.model_copy(
        update={"metadata_worker_count": 6, "metadata_fetch_timeout_seconds": 2.0}
    )

    runtime = build_worker_runtime(settings)

    create_redis_client.assert_called_once_with(settings)
    session_manager_cls.return_value.init.assert_called_once_with(settings.database_url)
    assert runtime.pool.config.worker_count == 6
    assert runtime.pool.config.fetch_timeout == 2.0
    assert runtime.pool._publisher is not None
    assert runtime.queue.pending_key == "metadata_queue:pending"


@patch("clubhouse.metadata_queue.runtime.DatabaseSessionManager")
@patch("clubhouse.metadata_queue.runtime.create_redis_client")
def test_build_worker_runtime_overrides_worker_count(create_redis_client, session_manager_cls, test_settings):
    from clubhouse.metadata_queue.runtime import build_worker_runtime

    settings = test_settings.model_copy(update={"metadata_publish_events": False})

    runtime = build_worker_runtime(settings, worker_count=9)

    assert runtime.pool.config.worker_count == 9
    assert runtime.pool._publisher is None
