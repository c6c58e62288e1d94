import json
import pathlib

ROOT = pathlib.Path(__file__).resolve().parents[1]

def test_config_file_exists_and_has_placeholders():
    cfg = ROOT / "config.yaml"
    assert cfg.exists(), "config.yaml missing at project root"
    text = cfg.read_text(encoding="utf-8")

    forbidden = ["http://", "https://", "AKIA", "AIza", "secret:", "token:", "key:"]

    def safe(line: str) -> bool:
        if "${" in line:
            return True
        return not any(bad in line for bad in forbidden)

    assert all(safe(line) for line in text.splitlines()), "config.yaml contains potential secrets or live URLs"

def test_bundled_attachments_are_valid_json():
    abi = json.loads((ROOT / "abi.json").read_text(encoding="utf-8"))
    assert isinstance(abi, list)
    instructions = json.loads((ROOT / "event_parsing_instructions.json").read_text(encoding="utf-8"))
    assert isinstance(instructions, dict)
