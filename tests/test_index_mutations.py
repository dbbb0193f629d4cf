import sqlite3
import pytest
from manifest_index import ManifestIndex, OpenDisposition
from manifest_index.errors import ManifestError, ManifestNotFoundError
from manifest_index.schema import metadata_table
from manifest_index.search import RequestMatch, SearchRequest, MatchType, VersionAndChannel

PAST = 1_000_000


def _key_for(idx, package_id):
    result = idx.search(SearchRequest(query=RequestMatch(package_id, MatchType.EXACT)))
    assert len(result.matches) == 1
    return result.matches[0][0]


def test_add_then_lookup(index, make_manifest):
    m = make_manifest('Contoso.App', '1.0.0', name='Contoso App')
    index.add_manifest(m, 'manifests/c/Contoso/App/1.0.0.yaml')
    key = _key_for(index, 'Contoso.App')
    assert index.get_id_string_by_id(key) == 'Contoso.App'
    assert index.get_name_string_by_id(key) == 'Contoso App'
    assert index.get_path_string_by_key(key, '1.0.0', '') == 'manifests/c/Contoso/App/1.0.0.yaml'
    assert index.get_versions_by_id(key) == [VersionAndChannel('1.0.0', '')]


def test_add_advances_watermark(index, index_path, make_manifest, set_metadata, read_last_write):
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    index.add_manifest(make_manifest(), 'a.yaml')
    assert read_last_write(index_path) > PAST


def test_add_duplicate_rolls_back(index, index_path, make_manifest, set_metadata, read_last_write):
    index.add_manifest(make_manifest(), 'a.yaml')
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    with pytest.raises(sqlite3.IntegrityError):
        index.add_manifest(make_manifest(tags=['new-tag']), 'b.yaml')
    assert read_last_write(index_path) == PAST
    with sqlite3.connect(index_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM paths WHERE path='b.yaml'").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM tags").fetchone()[0] == 0


def test_backend_failure_rolls_back(index, index_path, make_manifest, monkeypatch, set_metadata, read_last_write):
    index.add_manifest(make_manifest('Existing.Pkg'), 'existing.yaml')
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    real_add = index.backend.add_manifest

    def failing_add(conn, manifest, relative_path):
        real_add(conn, manifest, relative_path)
        raise RuntimeError('simulated backend failure')

    monkeypatch.setattr(index.backend, 'add_manifest', failing_add)
    with pytest.raises(RuntimeError):
        index.add_manifest(make_manifest('Fresh.Pkg', tags=['t1'], commands=['fresh']), 'fresh.yaml')

    assert read_last_write(index_path) == PAST
    with sqlite3.connect(index_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM manifest").fetchone()[0] == 1
        assert conn.execute("SELECT COUNT(*) FROM ids WHERE id='Fresh.Pkg'").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM commands").fetchone()[0] == 0
    assert not index.connection.in_transaction


def test_update_missing_returns_false(index, index_path, make_manifest, set_metadata, read_last_write):
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    assert index.update_manifest(make_manifest('Not.There'), 'x.yaml') is False
    assert read_last_write(index_path) == PAST
    assert not index.connection.in_transaction


def test_update_unchanged_returns_false(index, index_path, make_manifest, set_metadata, read_last_write):
    m = make_manifest(tags=['a', 'b'])
    index.add_manifest(m, 'a.yaml')
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    assert index.update_manifest(make_manifest(tags=['b', 'a']), 'a.yaml') is False
    assert read_last_write(index_path) == PAST


def test_update_changes_values(index, index_path, make_manifest, set_metadata, read_last_write):
    index.add_manifest(make_manifest(name='Old Name', tags=['old']), 'old.yaml')
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    assert index.update_manifest(make_manifest(name='New Name', tags=['new']), 'new.yaml') is True
    assert read_last_write(index_path) > PAST
    key = _key_for(index, 'Contoso.App')
    assert index.get_name_string_by_id(key) == 'New Name'
    assert index.get_path_string_by_key(key, '1.0.0') == 'new.yaml'
    with sqlite3.connect(index_path) as conn:
        # Values no longer referenced are dropped.
        assert [r[0] for r in conn.execute("SELECT name FROM names")] == ['New Name']
        assert [r[0] for r in conn.execute("SELECT tag FROM tags")] == ['new']
        assert [r[0] for r in conn.execute("SELECT path FROM paths")] == ['new.yaml']


def test_remove(index, index_path, make_manifest, set_metadata, read_last_write):
    index.add_manifest(make_manifest(version='1.0.0'), 'v1.yaml')
    index.add_manifest(make_manifest(version='2.0.0', tags=['x']), 'v2.yaml')
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    index.remove_manifest(make_manifest(version='2.0.0'), 'v2.yaml')
    assert read_last_write(index_path) > PAST
    key = _key_for(index, 'Contoso.App')
    assert index.get_versions_by_id(key) == [VersionAndChannel('1.0.0', '')]
    with sqlite3.connect(index_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM tags").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM versions").fetchone()[0] == 1


def test_remove_last_version_drops_package(index, make_manifest):
    index.add_manifest(make_manifest(), 'a.yaml')
    index.remove_manifest(make_manifest(), 'a.yaml')
    assert index.search(SearchRequest()).matches == []


def test_remove_missing_raises(index, index_path, make_manifest, set_metadata, read_last_write):
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    with pytest.raises(ManifestNotFoundError):
        index.remove_manifest(make_manifest('Not.There'), 'x.yaml')
    assert read_last_write(index_path) == PAST


def test_remove_wrong_path_raises(index, make_manifest):
    index.add_manifest(make_manifest(), 'a.yaml')
    with pytest.raises(ManifestNotFoundError):
        index.remove_manifest(make_manifest(), 'b.yaml')


def test_relative_path_separators_normalized(index, make_manifest):
    index.add_manifest(make_manifest(), 'manifests\\c\\Contoso.yaml')
    key = _key_for(index, 'Contoso.App')
    assert index.get_path_string_by_key(key, '1.0.0') == 'manifests/c/Contoso.yaml'


def test_versions_sorted_newest_first(index, make_manifest):
    for v, ch in [('1.9', ''), ('1.10', ''), ('1.10', 'beta'), ('0.5', '')]:
        index.add_manifest(make_manifest(version=v, channel=ch), f'{v}-{ch}.yaml')
    key = _key_for(index, 'Contoso.App')
    assert index.get_versions_by_id(key) == [
        VersionAndChannel('1.10', 'beta'),
        VersionAndChannel('1.10', ''),
        VersionAndChannel('1.9', ''),
        VersionAndChannel('0.5', ''),
    ]


def test_name_comes_from_newest_version(index, make_manifest):
    index.add_manifest(make_manifest(version='2.0', name='Renamed'), 'b.yaml')
    index.add_manifest(make_manifest(version='1.0', name='Original'), 'a.yaml')
    assert index.get_name_string_by_id(_key_for(index, 'Contoso.App')) == 'Renamed'


def test_unknown_key_lookups(index):
    assert index.get_id_string_by_id(999) is None
    assert index.get_name_string_by_id(999) is None
    assert index.get_path_string_by_key(999, '1.0') is None
    assert index.get_versions_by_id(999) == []


def test_manifest_from_file(index, manifest_file):
    path = manifest_file("""
        PackageIdentifier: Fabrikam.Tool
        PackageName: Fabrikam Tool
        PackageVersion: "3.1.0"
        Moniker: fabtool
        Tags: [cli, tools]
        Commands: [fab]
    """)
    index.add_manifest(path, 'manifests/f/Fabrikam/Tool/3.1.0.yaml')
    key = _key_for(index, 'Fabrikam.Tool')
    assert index.get_name_string_by_id(key) == 'Fabrikam Tool'
    assert index.update_manifest(path, 'manifests/f/Fabrikam/Tool/3.1.0.yaml') is False
    index.remove_manifest(str(path), 'manifests/f/Fabrikam/Tool/3.1.0.yaml')
    assert index.get_id_string_by_id(key) is None


def test_invalid_manifest_file_is_not_written(index, index_path, manifest_file, set_metadata, read_last_write):
    set_metadata(index_path, metadata_table.LAST_WRITE_TIME, PAST)
    path = manifest_file("PackageIdentifier: Missing.Version\nPackageName: x\n")
    with pytest.raises(ManifestError):
        index.add_manifest(path, 'x.yaml')
    assert read_last_write(index_path) == PAST


def test_writes_persist_across_reopen(index_path, make_manifest):
    with ManifestIndex.create_new(index_path) as idx:
        idx.add_manifest(make_manifest(), 'a.yaml')
    with ManifestIndex.open(index_path, OpenDisposition.IMMUTABLE) as idx:
        assert idx.get_id_string_by_id(_key_for(idx, 'Contoso.App')) == 'Contoso.App'


def test_immutable_index_rejects_mutation(index_path, make_manifest):
    ManifestIndex.create_new(index_path).close()
    with ManifestIndex.open(index_path, OpenDisposition.IMMUTABLE) as idx:
        with pytest.raises(sqlite3.OperationalError):
            idx.add_manifest(make_manifest(), 'a.yaml')
        assert not idx.connection.in_transaction


def test_prepare_for_packaging(index, index_path, make_manifest, read_last_write):
    for i in range(20):
        index.add_manifest(make_manifest(f'Pkg.N{i}'), f'{i}.yaml')
    for i in range(19):
        index.remove_manifest(make_manifest(f'Pkg.N{i}'), f'{i}.yaml')
    before = read_last_write(index_path)
    index.prepare_for_packaging()
    assert read_last_write(index_path) == before
    assert index.connection.execute("PRAGMA freelist_count").fetchone()[0] == 0
    assert len(index.search(SearchRequest()).matches) == 1


def test_removed_package_key_is_not_reused(index, make_manifest):
    index.add_manifest(make_manifest('Contoso.A'), 'a.yaml')
    index.add_manifest(make_manifest('Contoso.B'), 'b.yaml')
    old_key = index.search(SearchRequest(query=RequestMatch('Contoso.B', MatchType.EXACT))).matches[0][0]
    index.remove_manifest(make_manifest('Contoso.B'), 'b.yaml')
    index.add_manifest(make_manifest('Contoso.C'), 'c.yaml')
    new_key = index.search(SearchRequest(query=RequestMatch('Contoso.C', MatchType.EXACT))).matches[0][0]
    assert new_key != old_key
    assert index.get_id_string_by_id(old_key) is None
