import pytest
from fieldops.services.kv_store import JsonKeyValueStore, OFFLINE_QUEUE_KEY
from fieldops.services.offline_queue import OfflineQueue


class RecordingDispatcher:
    def __init__(self):
        self.calls = []
        self.fail = False

    def __call__(self, action):
        if self.fail:
            raise ConnectionError('network down')
        self.calls.append((action.op, action.table, action.data))


@pytest.fixture()
def store(tmp_path):
    return JsonKeyValueStore(str(tmp_path / 'kv.json'))


def test_offline_actions_persist_and_reload(store):
    dispatch = RecordingDispatcher()
    q = OfflineQueue(store, dispatch, online=False)
    q.submit('UPDATE', 'tickets', {'id': 1, 'status': 'in-progress'})
    q.submit('CREATE', 'ticket_history', {'ticket_id': 1, 'notes': 'on site'})
    assert dispatch.calls == []
    assert len(store.get(OFFLINE_QUEUE_KEY)) == 2
    reloaded = OfflineQueue(store, dispatch, online=False)
    assert [a.table for a in reloaded.pending()] == ['tickets', 'ticket_history']
    assert reloaded.pending()[0].id == q.pending()[0].id


def test_back_online_replays_in_order(store):
    dispatch = RecordingDispatcher()
    q = OfflineQueue(store, dispatch, online=False)
    q.submit('UPDATE', 'tickets', {'id': 1, 'status': 'assigned'})
    q.submit('UPDATE', 'tickets', {'id': 1, 'status': 'in-progress'})
    assert q.set_online(False) is None
    result = q.set_online(True)
    assert result.synced == 2
    assert result.success
    assert [c[2]['status'] for c in dispatch.calls] == ['assigned', 'in-progress']
    assert q.pending() == []
    assert store.get(OFFLINE_QUEUE_KEY) == []


def test_failed_actions_retry_then_drop(store):
    dispatch = RecordingDispatcher()
    dispatch.fail = True
    q = OfflineQueue(store, dispatch, max_retries=2, online=False)
    q.submit('UPDATE', 'tickets', {'id': 7})
    first = q.set_online(True)
    assert first.failed == 1
    assert 'network down' in first.errors[0]
    assert q.pending()[0].retry_count == 1
    second = q.replay()
    assert second.failed == 1
    assert q.pending() == []


def test_online_submit_dispatches_immediately(store):
    dispatch = RecordingDispatcher()
    q = OfflineQueue(store, dispatch)
    q.submit('DELETE', 'ticket_comments', {'id': 3})
    assert dispatch.calls == [('DELETE', 'ticket_comments', {'id': 3})]
    assert q.pending() == []


def test_unknown_op_rejected(store):
    q = OfflineQueue(store, RecordingDispatcher())
    with pytest.raises(ValueError):
        q.submit('UPSERT', 'tickets', {})
    assert q.pending() == []
