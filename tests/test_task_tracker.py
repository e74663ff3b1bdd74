"""Tests for task_tracker module."""

from unittest import mock

import pytest

from vmcluster.errors import OperationError, StalledError
from vmcluster.models import Node, TaskHandle
from vmcluster.task_tracker import TaskTracker, reduce_pending, terminal_keys


def _nodes(*names):
    return [Node(name=name, address="10.0.0.5/24", template="coreos-template") for name in names]


def test_terminal_keys_only_success_and_error():
    """Test only success and error count as terminal."""
    snapshot = [("task-1", "success"), ("task-2", "error"), ("task-3", "running"), ("task-4", "queued")]
    assert terminal_keys(snapshot) == frozenset({"task-1", "task-2"})


def test_terminal_keys_ignores_unknown_states():
    """Test states vSphere may add later are treated as non-terminal."""
    assert terminal_keys([("task-1", "paused")]) == frozenset()


def test_reduce_pending_is_pure():
    """Test reduce_pending returns a new dict and leaves its input alone."""
    pending = {
        "task-1": TaskHandle("task-1", "a"),
        "task-2": TaskHandle("task-2", "b"),
    }

    remaining = reduce_pending(pending, [("task-1", "success"), ("task-9", "error")])

    assert remaining == {"task-2": TaskHandle("task-2", "b")}
    assert len(pending) == 2


def test_create_missing_skips_existing_nodes(mock_client):
    """Test nodes already in inventory issue no clone and no handle."""
    mock_client.existing_vm_names.return_value = {"a", "b"}
    tracker = TaskTracker(mock_client, poll_interval=0)

    pending = tracker.create_missing(_nodes("a", "b"), mock.MagicMock(), "folder", "pool", "ds")

    assert pending == {}
    mock_client.clone_vm.assert_not_called()


def test_create_missing_issues_one_clone_per_absent_node(mock_client, task_factory):
    """Test one handle per issued clone, keyed by task key."""
    mock_client.existing_vm_names.return_value = {"b"}
    mock_client.clone_vm.side_effect = [task_factory("task-10"), task_factory("task-11")]
    template = mock.MagicMock()
    template.name = "coreos-template"
    tracker = TaskTracker(mock_client, poll_interval=0)

    pending = tracker.create_missing(_nodes("a", "b", "c"), template, "folder", "pool", "ds", host="esx1")

    assert pending == {
        "task-10": TaskHandle("task-10", "a"),
        "task-11": TaskHandle("task-11", "c"),
    }
    mock_client.clone_vm.assert_any_call(template, "a", "folder", "pool", "ds", host="esx1")
    mock_client.clone_vm.assert_any_call(template, "c", "folder", "pool", "ds", host="esx1")


def test_create_missing_aborts_on_clone_failure(mock_client, task_factory):
    """Test a refused clone stops the run; later nodes are not attempted."""
    mock_client.clone_vm.side_effect = [task_factory("task-1"), OperationError("no space"), task_factory("task-3")]
    tracker = TaskTracker(mock_client, poll_interval=0)

    with pytest.raises(OperationError, match="no space"):
        tracker.create_missing(_nodes("a", "b", "c"), mock.MagicMock(), "folder", "pool", "ds")

    assert mock_client.clone_vm.call_count == 2


@mock.patch("time.sleep")
def test_await_all_empty_returns_without_polling(mock_sleep, mock_client):
    """Test an empty tracked set never touches the task feed."""
    TaskTracker(mock_client).await_all({})

    mock_client.task_snapshot.assert_not_called()
    mock_sleep.assert_not_called()


@mock.patch("time.sleep")
def test_await_all_polls_until_every_task_is_terminal(mock_sleep, mock_client):
    """Test polling continues until both tasks finish, in any order."""
    mock_client.task_snapshot.side_effect = [
        [("task-1", "running"), ("task-2", "queued")],
        [("task-1", "running"), ("task-2", "success")],
        [("task-1", "error"), ("task-7", "running")],
    ]
    pending = {"task-1": TaskHandle("task-1", "a"), "task-2": TaskHandle("task-2", "b")}

    TaskTracker(mock_client, poll_interval=15).await_all(pending)

    assert mock_client.task_snapshot.call_count == 3
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(15)


@mock.patch("time.sleep")
def test_await_all_uses_configured_poll_interval(mock_sleep, mock_client):
    """Test the default interval comes from configuration."""
    mock_client.task_snapshot.side_effect = [[("task-1", "running")], [("task-1", "success")]]

    with mock.patch("vmcluster.task_tracker.Config.TASK_POLL_INTERVAL", 15.0):
        TaskTracker(mock_client).await_all({"task-1": TaskHandle("task-1", "a")})

    mock_sleep.assert_called_once_with(15.0)


@mock.patch("time.sleep")
@mock.patch("time.time")
def test_await_all_raises_stalled_after_timeout(mock_time, mock_sleep, mock_client):
    """Test a configured timeout turns an endless wait into StalledError."""
    mock_time.side_effect = [0, 10, 31, 31, 31]
    mock_client.task_snapshot.return_value = [("task-1", "running")]

    tracker = TaskTracker(mock_client, poll_interval=15, timeout=30)
    with pytest.raises(StalledError, match="within 30s: a"):
        tracker.await_all({"task-1": TaskHandle("task-1", "a")})

    assert mock_sleep.call_count == 1
