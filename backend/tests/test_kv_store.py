import pytest
from fieldops.services.kv_store import JsonKeyValueStore, load_preferences, save_preferences, DEFAULT_PREFERENCES


def test_set_get_delete_keys(tmp_path):
    store = JsonKeyValueStore(str(tmp_path / 'state' / 'kv.json'))
    assert store.get('missing') is None
    assert store.get('missing', 'fallback') == 'fallback'
    store.set('b', {'x': 1})
    store.set('a', [1, 2])
    assert store.keys() == ['a', 'b']
    assert store.get('b') == {'x': 1}
    # a second instance sees what the first wrote
    assert JsonKeyValueStore(store.path).get('a') == [1, 2]
    assert store.delete('a') is True
    assert store.delete('a') is False
    assert store.keys() == ['b']


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / 'kv.json'
    path.write_text('{not json', encoding='utf-8')
    store = JsonKeyValueStore(str(path))
    assert store.keys() == []
    store.set('k', 'v')
    assert store.get('k') == 'v'


def test_preferences_defaults_and_merge(tmp_path):
    store = JsonKeyValueStore(str(tmp_path / 'kv.json'))
    assert load_preferences(store) == DEFAULT_PREFERENCES
    prefs = save_preferences(store, {'dark_mode': True})
    assert prefs['dark_mode'] is True
    assert prefs['language'] == 'en'
    assert load_preferences(store)['dark_mode'] is True
    with pytest.raises(KeyError):
        save_preferences(store, {'font_size': 14})
