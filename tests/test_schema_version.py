import pytest
from manifest_index.errors import UnsupportedVersionError
from manifest_index.schema.dispatch import create_backend, latest_version, resolve_version, known_versions
from manifest_index.schema.v1_0 import IndexBackendV1_0, version_sort_key
from manifest_index.schema.version import SchemaVersion


def test_parse_and_str():
    assert SchemaVersion.parse('1.0') == SchemaVersion(1, 0)
    assert SchemaVersion.parse('2') == SchemaVersion(2, 0)
    assert SchemaVersion.parse(' Latest ').is_latest()
    assert str(SchemaVersion(1, 3)) == '1.3'
    assert str(SchemaVersion.latest()) == 'latest'


@pytest.mark.parametrize('text', ['', '1.x', '1.2.3', '-1'])
def test_parse_rejects_garbage(text):
    with pytest.raises(ValueError):
        SchemaVersion.parse(text)


def test_ordering():
    assert SchemaVersion(1, 0) < SchemaVersion(1, 1) < SchemaVersion(2, 0) < SchemaVersion.latest()


def test_latest_resolves_to_newest_known():
    assert resolve_version(SchemaVersion.latest()) == latest_version() == max(known_versions())
    backend = create_backend(SchemaVersion.latest())
    assert backend.version == latest_version()


def test_newer_minor_served_by_same_major():
    backend = create_backend(SchemaVersion(1, 7))
    assert isinstance(backend, IndexBackendV1_0)
    assert backend.version == SchemaVersion(1, 0)


@pytest.mark.parametrize('version', [SchemaVersion(0, 9), SchemaVersion(2, 0), SchemaVersion(99, 0)])
def test_unknown_major_unsupported(version):
    with pytest.raises(UnsupportedVersionError) as exc:
        create_backend(version)
    assert exc.value.version == version


def test_latest_sentinel_cannot_be_persisted():
    with pytest.raises(ValueError):
        SchemaVersion.latest().write(None)


def test_version_sort_key_numeric():
    assert version_sort_key('1.10') > version_sort_key('1.9')
    assert version_sort_key('2.0') > version_sort_key('1.99.1')
