import sqlite3, textwrap, pytest
from pathlib import Path

from manifest_index import Manifest, ManifestIndex
from manifest_index.schema import metadata_table


@pytest.fixture()
def index_path(tmp_path):
    return tmp_path / 'index.db'


@pytest.fixture()
def index(index_path):
    idx = ManifestIndex.create_new(index_path)
    yield idx
    idx.close()


@pytest.fixture()
def make_manifest():
    def _make(id='Contoso.App', version='1.0.0', channel='', name=None, moniker='', tags=None, commands=None):
        return Manifest(id=id, name=name or id.split('.')[-1], version=version, channel=channel,
                        moniker=moniker, tags=list(tags or []), commands=list(commands or []))
    return _make


@pytest.fixture()
def manifest_file(tmp_path):
    """Write a YAML manifest and return its path."""
    def _write(body: str, name: str = 'manifest.yaml') -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(body), encoding='utf-8')
        return path
    return _write


@pytest.fixture()
def read_last_write():
    return _read_last_write


@pytest.fixture()
def set_metadata():
    return _set_metadata


def _read_last_write(path) -> int:
    conn = sqlite3.connect(path)
    try:
        return conn.execute("SELECT value FROM metadata WHERE name=?", (metadata_table.LAST_WRITE_TIME,)).fetchone()[0]
    finally:
        conn.close()


def _set_metadata(path, name, value):
    conn = sqlite3.connect(path)
    try:
        with conn:
            conn.execute("UPDATE metadata SET value=? WHERE name=?", (value, name))
    finally:
        conn.close()
