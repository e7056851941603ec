import io
import tarfile

import pytest
from httpx import ASGITransport, AsyncClient

from lane_sense.app import create_app
from lane_sense.model import MODEL_NAME, MODEL_PATH_ENV, extract_model, get_model_path


def _make_archive(path, members: dict[str, bytes]) -> None:
    with tarfile.open(path, "w:gz") as tf:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))


def test_extract_model_flattens_nested_member(tmp_path):
    archive = tmp_path / "resources.tar.gz"
    _make_archive(archive, {
        "resources/README.md": b"readme",
        f"resources/onnx/{MODEL_NAME}": b"onnx-bytes",
    })
    target = tmp_path / "models" / MODEL_NAME
    target.parent.mkdir()

    extract_model(archive, target)

    assert target.read_bytes() == b"onnx-bytes"
    assert not (tmp_path / "models" / "resources").exists()


def test_extract_model_missing_member(tmp_path):
    archive = tmp_path / "resources.tar.gz"
    _make_archive(archive, {"resources/other.onnx": b"x"})

    with pytest.raises(FileNotFoundError):
        extract_model(archive, tmp_path / MODEL_NAME)


def test_model_path_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv(MODEL_PATH_ENV, str(tmp_path / "custom.onnx"))
    assert get_model_path() == tmp_path / "custom.onnx"


def test_model_path_default(monkeypatch):
    monkeypatch.delenv(MODEL_PATH_ENV, raising=False)
    path = get_model_path()
    assert path.name == MODEL_NAME
    assert path.parent.name == "models"


async def test_model_status(monkeypatch, tmp_path):
    model_file = tmp_path / "seg.onnx"
    monkeypatch.setenv(MODEL_PATH_ENV, str(model_file))
    app = create_app()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = (await client.get("/api/model/status")).json()
        model_file.write_bytes(b"onnx")
        present = (await client.get("/api/model/status")).json()

    assert missing == {"exists": False, "name": "seg.onnx"}
    assert present == {"exists": True, "name": "seg.onnx"}
