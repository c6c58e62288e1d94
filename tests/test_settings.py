import json
import pytest

from chain_fakes import FakeProvider, TRANSFER_ABI
from common.settings import ConfigError, load_settings
from etl.pipeline import build_context
from ingestion.checkpoint import Checkpoint, StorageCheckpoint
from storage.sqlite_backend import SQLiteStorage

ADDR = "0x" + "AB" * 20


def _write_config(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body)
    return str(path)


def _full_config(tmp_path, extra=""):
    (tmp_path / "abi.json").write_text(json.dumps([TRANSFER_ABI]))
    (tmp_path / "rules.json").write_text(json.dumps({"Transfer": {"amount": {"argType": "eth"}}}))
    return _write_config(tmp_path, f"""
contract:
  address: "{ADDR}"
  abi_file: abi.json
  parsing_instructions_file: rules.json
rpc:
  url: "${{RPC_URL}}"
db:
  driver: sqlite
  sqlite_path: {tmp_path / "events.db"}
{extra}
""")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("RPC_URL_OVERRIDE", "CONTRACT_ADDRESS", "PG_DSN"):
        monkeypatch.delenv(name, raising=False)


def test_load_settings_defaults(tmp_path):
    st = load_settings(_full_config(tmp_path))
    assert st.contract.address == ADDR.lower()
    assert st.rpc.url == "https://example.invalid"
    assert st.ingestion.max_lookback == 1000
    assert st.checkpoint.backend == "db"


def test_missing_contract_address_is_fatal(tmp_path):
    path = _write_config(tmp_path, """
contract:
  abi_file: abi.json
rpc:
  url: "https://rpc.invalid"
""")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_missing_abi_is_fatal(tmp_path):
    path = _write_config(tmp_path, f"""
contract:
  address: "{ADDR}"
rpc:
  url: "https://rpc.invalid"
""")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_plain_http_rpc_rejected(tmp_path):
    path = _write_config(tmp_path, f"""
contract:
  address: "{ADDR}"
  abi_file: abi.json
rpc:
  url: "http://rpc.invalid"
""")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_env_overrides(tmp_path, monkeypatch):
    other = "0x" + "cd" * 20
    monkeypatch.setenv("CONTRACT_ADDRESS", other)
    monkeypatch.setenv("RPC_URL_OVERRIDE", "https://node.invalid")
    st = load_settings(_full_config(tmp_path))
    assert st.contract.address == other
    assert st.rpc.url == "https://node.invalid"


def test_build_context_loads_attachments(tmp_path):
    path = _full_config(tmp_path)
    ctx = build_context(load_settings(path), config_dir=str(tmp_path), provider=FakeProvider())
    assert len(ctx.schema) == 1
    assert ctx.instructions["Transfer"]["amount"].argType == "eth"
    assert isinstance(ctx.sink, SQLiteStorage)
    assert isinstance(ctx.checkpoint, StorageCheckpoint)


def test_build_context_file_checkpoint(tmp_path):
    path = _full_config(tmp_path, extra=f"checkpoint:\n  backend: file\n  file: {tmp_path / 'ckpt.json'}\n")
    ctx = build_context(load_settings(path), config_dir=str(tmp_path), provider=FakeProvider())
    assert isinstance(ctx.checkpoint, Checkpoint)


def test_build_context_missing_abi_file(tmp_path):
    path = _full_config(tmp_path)
    (tmp_path / "abi.json").unlink()
    with pytest.raises(ConfigError):
        build_context(load_settings(path), config_dir=str(tmp_path), provider=FakeProvider())


def test_build_context_invalid_instructions(tmp_path):
    path = _full_config(tmp_path)
    (tmp_path / "rules.json").write_text(json.dumps({"Transfer": {"amount": {"argType": "wei"}}}))
    with pytest.raises(ConfigError):
        build_context(load_settings(path), config_dir=str(tmp_path), provider=FakeProvider())
