"""
小说对话增强工具 - 主程序
读取小说文本，按段落运行增强会话并写出结果
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import get_ollama_config, get_processing_config
from exceptions import ConfigurationError, NovelEnhancerError
from models.session import EnhancementSession, SessionState
from services.enhancement_service import EnhancementService, ListOutputSink
from services.llm_service import ModelGateway
from services.novel_store import NovelStore
from splitter import PARAGRAPH_SEPARATOR
from tokenizer import count_tokens
from utils import atomic_write_text, generate_novel_id, safe_read_text, setup_logging

logger = logging.getLogger(__name__)

_PARAGRAPH_SPLIT = "\n\n"


def read_paragraphs(file_path: str) -> List[str]:
    """读取文本文件并按空行分段"""
    text = safe_read_text(file_path, fallback_encodings=["gb18030", "latin-1"])
    text = text.replace("\r\n", "\n")
    return [p.strip() for p in text.split(_PARAGRAPH_SPLIT) if p.strip()]


def default_output_path(input_path: str) -> str:
    path = Path(input_path)
    return str(path.with_name(f"{path.stem}_enhanced{path.suffix or '.txt'}"))


class NovelEnhancerApp:
    """小说对话增强应用主类"""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.processing_config = get_processing_config()
        self.ollama_config = get_ollama_config()

    async def run(self) -> int:
        """运行主程序，返回退出码"""
        try:
            self.ollama_config.validate()
            self.processing_config.validate()
            self._print_welcome()

            paragraphs = read_paragraphs(self.args.input)
            if not paragraphs:
                print("❌ 输入文件没有可增强的内容")
                return 1
            self._show_file_info(paragraphs)

            session, output = await self._enhance(paragraphs)
            self._show_results(session, output)
            return 0 if session.state == SessionState.COMPLETE else 1

        except KeyboardInterrupt:
            print("\n用户中断操作")
            return 130
        except ConfigurationError as e:
            print(f"\n❌ 配置错误: {e}")
            print("\n💡 请检查环境变量或.env文件中的配置")
            return 2
        except FileNotFoundError as e:
            print(f"\n❌ 文件错误: {e}")
            return 1
        except NovelEnhancerError as e:
            print(f"\n❌ 处理错误: {e}")
            return 1
        finally:
            await ModelGateway.close_http_client()

    def _print_welcome(self) -> None:
        print("\n" + "=" * 60)
        print("📝 小说对话增强工具")
        print("=" * 60)
        print(f"🔧 模型服务: {self.ollama_config.endpoint}")
        print(f"🤖 模型: {self.ollama_config.model}")
        print(f"🎯 最大块大小: {self.processing_config.max_chunk_size} 字符")
        print("=" * 60 + "\n")

    def _show_file_info(self, paragraphs: List[str]) -> None:
        text = PARAGRAPH_SEPARATOR.join(paragraphs)
        print("📄 文件信息:")
        print(f"   路径: {self.args.input}")
        print(f"   段落数: {len(paragraphs)}")
        print(f"   字符数: {len(text):,}")
        try:
            print(f"   约 {count_tokens(text):,} tokens")
        except NovelEnhancerError as e:
            logger.debug(f"token 统计失败: {e}")

    async def _enhance(self, paragraphs: List[str]) -> tuple[EnhancementSession, str]:
        novel_id = "default"
        store: Optional[NovelStore] = None
        if self.args.novel_url:
            novel_id = generate_novel_id(self.args.novel_url, self.args.title) or novel_id
            store = NovelStore(self.args.store) if self.args.store else NovelStore()

        sink = ListOutputSink(paragraphs)
        service = EnhancementService(store=store, progress_callback=self._print_progress)
        print("🚀 开始增强...")
        session = await service.enhance(sink, novel_id=novel_id)

        output = self.args.output or default_output_path(self.args.input)
        if session.completed_units:
            atomic_write_text(output, sink.text() + "\n")
        return session, output

    @staticmethod
    def _print_progress(info: Dict[str, Any]) -> None:
        if info.get("last_batch") is None:
            return
        status = f"❌ {info['last_error']}" if info.get("last_error") else "✅"
        print(
            f"   批次 {info['last_batch']}: {status} "
            f"({info['completed_units']}/{info['total_units']}, {info['progress']:.0%})"
        )

    @staticmethod
    def _show_results(session: EnhancementSession, output: str) -> None:
        summary = session.get_summary()
        print("\n" + "=" * 60)
        if session.state == SessionState.COMPLETE:
            print("🎉 增强完成！")
        elif session.state == SessionState.TERMINATED:
            print("⏹️  增强已终止")
        else:
            print("❌ 增强失败")
        print("=" * 60)
        print(f"✅ 成功段落: {summary['completed_units']}/{summary['total_units']}")
        print(f"⚠️  失败段落: {summary['failed_units']}")
        print(f"⏱️  处理时间: {summary['elapsed_time']}")
        if session.completed_units:
            print(f"📁 输出文件: {output}")
        for error in session.errors[-5:]:
            print(f"   {error}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="使用本地 Ollama 模型增强小说译文中的对话")
    parser.add_argument("input", help="输入的txt文件")
    parser.add_argument("-o", "--output", help="输出文件（默认在输入文件旁生成 *_enhanced.txt）")
    parser.add_argument("--novel-url", help="小说页面URL，用于生成小说标识并保存人物表")
    parser.add_argument("--title", help="小说页面标题")
    parser.add_argument("--store", help="人物表存储文件（默认取 STORE_FILE）")
    parser.add_argument("--log-dir", help="日志目录，为空时只输出到控制台")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """主入口函数"""
    args = build_parser().parse_args(argv)
    setup_logging(log_dir=args.log_dir)
    return asyncio.run(NovelEnhancerApp(args).run())


if __name__ == "__main__":
    sys.exit(main())
