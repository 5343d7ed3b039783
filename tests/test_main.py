"""
测试命令行入口
"""

import asyncio

import pytest

import config
import main
from models.session import AvailabilityStatus
from services.enhancement_service import EnhancementService


class FakeGateway:
    def __init__(self, available=True):
        self.available = available

    async def check_availability(self, force=False):
        return AvailabilityStatus(
            available=self.available,
            checked_at=0.0,
            reason=None if self.available else "Connection timeout",
        )

    def register_session(self, token):
        pass

    def unregister_session(self, token):
        pass

    async def enhance_chunk(self, chunk, **kwargs):
        return chunk.upper()

    def terminate_all(self):
        return {"status": "terminated", "count": 0}


@pytest.fixture
def novel_file(tmp_path):
    path = tmp_path / "chapter.txt"
    path.write_text("Lin Feng said hello.\r\n\r\nMei Ling nodded.\n\n\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_services(monkeypatch):
    def use(available=True):
        gateway = FakeGateway(available)
        monkeypatch.setattr(
            main, "EnhancementService", lambda **kwargs: EnhancementService(gateway=gateway, **kwargs)
        )
        monkeypatch.setattr(main, "count_tokens", len)

    return use


def test_read_paragraphs(novel_file):
    assert main.read_paragraphs(str(novel_file)) == ["Lin Feng said hello.", "Mei Ling nodded."]


def test_default_output_path():
    assert main.default_output_path("/tmp/book.txt") == "/tmp/book_enhanced.txt"
    assert main.default_output_path("/tmp/book") == "/tmp/book_enhanced.txt"


def test_parser():
    args = main.build_parser().parse_args(["in.txt", "-o", "out.txt", "--novel-url", "https://a.com/x"])
    assert args.input == "in.txt"
    assert args.output == "out.txt"
    assert args.novel_url == "https://a.com/x"
    assert args.log_dir is None


def test_run_writes_output(novel_file, tmp_path, fake_services):
    fake_services()
    output = tmp_path / "out.txt"
    args = main.build_parser().parse_args([str(novel_file), "-o", str(output)])

    assert asyncio.run(main.NovelEnhancerApp(args).run()) == 0
    assert output.read_text(encoding="utf-8") == "LIN FENG SAID HELLO.\n\nMEI LING NODDED.\n"


def test_run_model_unavailable(novel_file, tmp_path, fake_services, monkeypatch):
    monkeypatch.setenv("MAX_RETRY", "1")
    config.reset_config()
    fake_services(available=False)
    output = tmp_path / "out.txt"
    args = main.build_parser().parse_args([str(novel_file), "-o", str(output)])

    assert asyncio.run(main.NovelEnhancerApp(args).run()) == 1
    assert not output.exists()


def test_run_missing_file(tmp_path):
    args = main.build_parser().parse_args([str(tmp_path / "missing.txt")])
    assert asyncio.run(main.NovelEnhancerApp(args).run()) == 1


def test_run_config_error(novel_file, monkeypatch):
    monkeypatch.setenv("OLLAMA_ENDPOINT", "localhost:11434")
    config.reset_config()
    args = main.build_parser().parse_args([str(novel_file)])
    assert asyncio.run(main.NovelEnhancerApp(args).run()) == 2
