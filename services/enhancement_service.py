"""
对话增强服务模块
核心业务逻辑：检查模型服务、分析人物、按批次顺序增强文本并写回
"""
import asyncio
import logging
import math
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Dict, List, Optional, Protocol, Tuple

from config import ProcessingConfig, get_processing_config
from exceptions import (
    ModelUnavailableError,
    OutputVerificationError,
    ProcessingError,
    RequestTerminatedError,
)
from models.character import CharacterMap
from models.session import EnhancementSession, NovelStyleInfo, SessionState
from prompts import create_character_summary
from services.cancellation import CancellationToken
from services.character_extractor import CharacterExtractor
from services.error_handler import ErrorClassifier, RecoveryManager
from services.gender_inferencer import GenderInferencer
from services.llm_service import ModelGateway
from services.novel_store import NovelStore
from services.style_analyzer import StyleCache
from splitter import PARAGRAPH_SEPARATOR, TextSplitter, build_context

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")

DEFAULT_NOVEL_ID = "default"


class OutputSink(Protocol):
    """增强结果的写回目标（页面段落、文件段落等）"""

    def __len__(self) -> int: ...

    def read(self, index: int) -> str: ...

    def write(self, index: int, text: str) -> None: ...

    def restore(self, index: int, original: str) -> None: ...

    def is_enhanced(self, index: int) -> bool: ...


class ListOutputSink:
    """基于内存列表的写回目标"""

    def __init__(self, units: Sequence[str]):
        self.units: List[str] = list(units)
        self.enhanced: set[int] = set()
        self.writes: List[int] = []

    def __len__(self) -> int:
        return len(self.units)

    def read(self, index: int) -> str:
        return self.units[index]

    def write(self, index: int, text: str) -> None:
        self.units[index] = text
        self.enhanced.add(index)
        self.writes.append(index)

    def restore(self, index: int, original: str) -> None:
        self.units[index] = original
        self.enhanced.discard(index)

    def is_enhanced(self, index: int) -> bool:
        return index in self.enhanced

    def text(self, separator: str = PARAGRAPH_SEPARATOR) -> str:
        return separator.join(self.units)


def calculate_batch_size(total_units: int, min_size: int = 5, max_size: int = 15) -> int:
    """目标批大小 = clamp(ceil(总数/3), min, max)"""
    return max(min_size, min(max_size, math.ceil(total_units / 3)))


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def verify_output(actual: str, expected: str) -> bool:
    """写回后的可见文本必须与增强文本一致（忽略空白差异）"""
    return bool(_normalize(expected)) and _normalize(actual) == _normalize(expected)


class EnhancementService:
    """对话增强会话编排"""

    def __init__(
        self,
        gateway: Optional[ModelGateway] = None,
        processing_config: Optional[ProcessingConfig] = None,
        extractor: Optional[CharacterExtractor] = None,
        inferencer: Optional[GenderInferencer] = None,
        style_cache: Optional[StyleCache] = None,
        store: Optional[NovelStore] = None,
        error_classifier: Optional[ErrorClassifier] = None,
        progress_callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.processing_config = processing_config or get_processing_config()
        self.gateway = gateway or ModelGateway()
        self.extractor = extractor or CharacterExtractor()
        self.inferencer = inferencer or GenderInferencer()
        self.style_cache = style_cache or StyleCache()
        self.store = store
        self.error_classifier = error_classifier or ErrorClassifier()
        self.recovery = RecoveryManager(self.error_classifier, sleep=sleep)
        self.splitter = TextSplitter(self.processing_config.max_chunk_size)
        self.progress_callback = progress_callback
        self.sleep = sleep

        self.session: Optional[EnhancementSession] = None
        self.character_map: CharacterMap = {}
        self.style: NovelStyleInfo = NovelStyleInfo()
        self._token: Optional[CancellationToken] = None
        self._running = False
        self._pending: Optional[Tuple[OutputSink, str]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def enhance(
        self,
        units: Sequence[str] | OutputSink,
        novel_id: str = DEFAULT_NOVEL_ID,
    ) -> EnhancementSession:
        """
        对一组文本单元（段落）运行增强会话

        会话进行中再次调用不会启动第二个会话，只标记"完成后再运行一次"，
        多次触发合并为最多一次后续运行。

        Args:
            units: 段落列表或写回目标
            novel_id: 小说标识，用于人物表和风格缓存

        Returns:
            EnhancementSession: 最后一次运行的会话
        """
        sink = ListOutputSink(units) if isinstance(units, (list, tuple)) else units

        if self._running:
            self._pending = (sink, novel_id)
            if self.session is not None:
                self.session.pending = True
            logger.info("已有会话在运行，完成后将再运行一次")
            return self.session

        self._running = True
        try:
            session = await self._run_session(sink, novel_id)
            while self._pending is not None and not session.terminated:
                sink, novel_id = self._pending
                self._pending = None
                logger.info("开始排队的后续会话")
                session = await self._run_session(sink, novel_id)
            return session
        finally:
            self._running = False
            self._pending = None

    def terminate(self) -> Dict[str, Any]:
        """终止当前会话和所有进行中的请求"""
        if self._token is not None:
            self._token.cancel()
        self._pending = None
        return self.gateway.terminate_all()

    async def _run_session(self, sink: OutputSink, novel_id: str) -> EnhancementSession:
        session = EnhancementSession(total_units=len(sink))
        self.session = session
        token = CancellationToken()
        self._token = token
        self.gateway.register_session(token)
        logger.info(f"会话 {session.id} 开始，共 {session.total_units} 个段落")

        try:
            session.transition(SessionState.CHECKING_PREREQUISITES)
            self._emit_progress()
            if not await self._check_prerequisites(session, token):
                return session

            session.transition(SessionState.ANALYZING_CHARACTERS)
            self._emit_progress()
            text = PARAGRAPH_SEPARATOR.join(sink.read(i) for i in range(len(sink)))
            self._analyze_novel(text, novel_id)
            if token.is_cancelled():
                session.terminate()
                return session

            session.transition(SessionState.PROCESSING)
            self._emit_progress()
            await self._process_batches(session, sink, token, novel_id)

            if session.state == SessionState.PROCESSING:
                session.complete()
        except RequestTerminatedError:
            session.terminate()
        except Exception as e:
            record = self.error_classifier.handle_error(e, "enhancement")
            if not session.is_terminal:
                session.fail(f"{record.category}: {e}")
        finally:
            self.gateway.unregister_session(token)
            if self._token is token:
                self._token = None
            logger.info(
                f"会话 {session.id} 结束: {session.state.value} "
                f"(成功 {session.completed_units} / 失败 {session.failed_units})"
            )
            self._emit_progress()

        return session

    async def _check_prerequisites(
        self, session: EnhancementSession, token: CancellationToken
    ) -> bool:
        """检查模型服务是否可用，失败时按 1s、2s... 递增间隔重试"""
        max_retry = self.processing_config.max_retry
        status = None
        for attempt in range(1, max_retry + 1):
            if token.is_cancelled():
                session.terminate()
                return False
            status = await self.gateway.check_availability(force=attempt > 1)
            if status.available:
                return True
            if attempt < max_retry:
                logger.warning(f"Ollama 不可用 ({status.reason})，{attempt}秒后重试")
                await self.sleep(attempt * 1.0)

        reason = status.reason if status is not None else None
        error = ModelUnavailableError(f"Ollama is not available: {reason}", reason=reason)
        record = self.error_classifier.handle_error(error, "availability")
        await self.recovery.attempt_recovery(record)
        session.fail(str(error))
        return False

    def _analyze_novel(self, text: str, novel_id: str) -> None:
        """提取人物、推断性别并与已保存的人物表合并；分析风格"""
        character_map = self.extractor.extract(text)
        if self.store is not None:
            known = self.store.get_character_map(novel_id)
            for name, record in known.items():
                if name in character_map:
                    character_map[name].merge(record)
        self.inferencer.infer_roster(character_map, text)
        if self.store is not None:
            character_map = self.store.merge_character_map(novel_id, character_map)
        self.character_map = character_map
        self.style = self.style_cache.get_style(novel_id, text)
        logger.info(
            f"识别到 {len(character_map)} 个人物，风格: {self.style.style} / {self.style.tone}"
        )

    async def _process_batches(
        self,
        session: EnhancementSession,
        sink: OutputSink,
        token: CancellationToken,
        novel_id: str,
    ) -> None:
        pending = [
            i for i in range(len(sink)) if not sink.is_enhanced(i) and sink.read(i).strip()
        ]
        skipped = len(sink) - len(pending)
        if skipped:
            session.record_success(skipped)
        if not pending:
            return

        batch_size = calculate_batch_size(
            len(pending),
            self.processing_config.min_batch_size,
            self.processing_config.max_batch_size,
        )
        batches = [pending[i:i + batch_size] for i in range(0, len(pending), batch_size)]
        summary = create_character_summary(self.character_map, self.processing_config.max_roster_size)
        logger.info(f"共 {len(batches)} 个批次，每批最多 {batch_size} 个段落")

        successful_batches = 0
        failed_batches = 0
        for batch_no, batch in enumerate(batches, 1):
            if token.is_cancelled():
                session.terminate()
                return
            if batch_no > 1:
                await self.sleep(self.processing_config.inter_batch_delay_ms / 1000)
                if token.is_cancelled():
                    session.terminate()
                    return

            try:
                succeeded, failed = await self._process_batch(
                    batch, sink, token, summary, f"{batch_no}/{len(batches)}"
                )
            except RequestTerminatedError:
                session.terminate()
                return
            except Exception as e:
                record = self.error_classifier.handle_error(e, "enhancement")
                session.record_failure(len(batch), f"批次 {batch_no}: {e}")
                failed_batches += 1
                self._emit_progress(batch_no=batch_no, error=str(e))
                # 单个批次失败只计数后继续，服务不可用时才结束会话
                if isinstance(e, ModelUnavailableError):
                    await self.recovery.attempt_recovery(record)
                    session.fail(f"批次 {batch_no}: {record.user_message}")
                    return
            else:
                session.record_success(succeeded)
                if failed:
                    session.record_failure(failed, f"批次 {batch_no}: {failed} 个段落写回校验失败")
                if succeeded:
                    successful_batches += 1
                    if self.store is not None:
                        self.store.add_enhanced_units(
                            novel_id, [i for i in batch if sink.is_enhanced(i)]
                        )
                else:
                    failed_batches += 1
                self._emit_progress(batch_no=batch_no)

            if failed_batches > successful_batches + self.processing_config.failure_margin:
                session.fail(
                    f"失败批次过多 ({failed_batches} 失败 / {successful_batches} 成功)"
                )
                return

    async def _process_batch(
        self,
        batch: Sequence[int],
        sink: OutputSink,
        token: CancellationToken,
        summary: str,
        label: str,
    ) -> Tuple[int, int]:
        """
        增强一个批次并写回

        Returns:
            Tuple[int, int]: (成功段落数, 校验失败段落数)
        """
        originals = [sink.read(i) for i in batch]
        logger.info(f"处理批次 {label} ({len(batch)} 个段落)")

        enhanced_text = await self._enhance_text(PARAGRAPH_SEPARATOR.join(originals), token, summary)
        parts = [p.strip() for p in _PARAGRAPH_BREAK.split(enhanced_text) if p.strip()]
        if len(parts) != len(batch):
            logger.warning(
                f"批次 {label} 返回 {len(parts)} 个段落，期望 {len(batch)}，改为逐段增强"
            )
            parts = []
            for original in originals:
                token.raise_if_cancelled()
                parts.append(await self._enhance_text(original, token, summary))

        # 提交前再检查一次，终止后不再写回
        token.raise_if_cancelled()

        succeeded = 0
        failed = 0
        for index, original, text in zip(batch, originals, parts):
            try:
                self._commit(sink, index, original, text)
                succeeded += 1
            except OutputVerificationError as e:
                logger.warning(str(e))
                failed += 1
        return succeeded, failed

    async def _enhance_text(self, text: str, token: CancellationToken, summary: str) -> str:
        """分块顺序增强，每块的上下文取前一块的增强结果"""
        chunks = self.splitter.plan_chunks(text)
        if not chunks:
            raise ProcessingError("No text to enhance")

        enhanced: Dict[int, str] = {}
        for chunk in chunks:
            token.raise_if_cancelled()
            if chunk.index > 0:
                await self.sleep(self.processing_config.batch_delay_ms / 1000)
            context = build_context(chunks, chunk.index, enhanced)
            enhanced[chunk.index] = await self.gateway.enhance_chunk(
                chunk.text,
                context=context,
                character_summary=summary,
                style=self.style,
                parent_token=token,
                description=f"块 {chunk.index + 1}/{len(chunks)}",
            )
        return PARAGRAPH_SEPARATOR.join(enhanced[c.index] for c in chunks)

    @staticmethod
    def _commit(sink: OutputSink, index: int, original: str, text: str) -> None:
        sink.write(index, text)
        if not verify_output(sink.read(index), text):
            sink.restore(index, original)
            raise OutputVerificationError(f"段落 {index} 写回校验失败，已恢复原文")

    def get_session_summary(self) -> Dict[str, Any]:
        if self.session is None:
            return {"status": "not_started"}
        return self.session.get_summary()

    def _emit_progress(self, batch_no: Optional[int] = None, error: Optional[str] = None) -> None:
        """向外部回调当前进度"""
        if not self.progress_callback or self.session is None:
            return

        session = self.session
        payload: Dict[str, Any] = {
            "session_id": session.id,
            "state": session.state.value,
            "progress": session.progress_percentage / 100,
            "completed_units": session.completed_units,
            "failed_units": session.failed_units,
            "total_units": session.total_units,
        }
        if batch_no is not None:
            payload["last_batch"] = batch_no
        if error is not None:
            payload["last_error"] = error

        try:
            self.progress_callback(payload)
        except Exception:
            logger.debug("Progress callback failed", exc_info=True)
