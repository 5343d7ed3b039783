"""
通用工具模块
包含日志配置、原子文件操作、哈希与小说标识生成等实用功能
"""
import hashlib
import os
import json
import re
import tempfile
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Union, List
from urllib.parse import unquote, urlparse
import logging
from datetime import datetime

LOG_FILE_NAME = 'novel_enhancer.log'

# 日志配置函数
_logging_configured = False


def setup_logging(level=None, log_dir: Optional[str] = None, log_file_name: str = LOG_FILE_NAME):
    """统一配置日志系统，避免重复配置

    Args:
        level: 日志级别，默认从环境变量 LOG_LEVEL 读取，若未设置则使用 INFO
        log_dir: 日志目录，为空时只输出到控制台
        log_file_name: 日志文件名
    """
    global _logging_configured
    if _logging_configured:
        return

    # 支持通过环境变量控制日志级别
    if level is None:
        level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        level = getattr(logging, level_str, logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    handlers: List[logging.Handler] = [console_handler]

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.FileHandler(Path(log_dir) / log_file_name, encoding='utf-8')
        )

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True  # 强制重新配置，即使已经配置过
    )
    _logging_configured = True


logger = logging.getLogger(__name__)


def create_hash(*parts: str) -> str:
    """计算若干文本片段的稳定哈希（用于缓存键）"""
    digest = hashlib.md5()
    for part in parts:
        digest.update((part or "").encode('utf-8'))
        digest.update(b'\x00')
    return digest.hexdigest()


_TITLE_CHAPTER_SUFFIX = re.compile(r'\s*[-–—|:]\s*(chapter|ch\.?|episode|part)\s*\d+.*$', re.IGNORECASE)
_TITLE_SEPARATOR_TAIL = re.compile(r'\s*[-–—|:]\s*.*$')
_TITLE_CHAPTER_PREFIX = re.compile(r'^(chapter|ch\.?|episode|part)\s*\d+\s*[-–—|:]\s*(.+)$', re.IGNORECASE)
_TITLE_SITE_SUFFIX = re.compile(
    r'\s*[-–—|:]\s*(read online|free|novel|story|web novel|light novel).*$', re.IGNORECASE
)
_TITLE_PARENTHESES = re.compile(r'\s*\(.*\)$')


def _clean_title(title: str) -> Optional[str]:
    """从页面标题中提取小说名"""
    cleaned = _TITLE_CHAPTER_SUFFIX.sub('', title)
    cleaned = _TITLE_SEPARATOR_TAIL.sub('', cleaned).strip()

    # 标题以章节信息开头时取后半部分
    chapter_match = _TITLE_CHAPTER_PREFIX.match(title)
    if chapter_match and chapter_match.group(2):
        cleaned = chapter_match.group(2).strip()

    cleaned = _TITLE_SITE_SUFFIX.sub('', cleaned)
    cleaned = _TITLE_PARENTHESES.sub('', cleaned).strip()
    return cleaned if len(cleaned) >= 3 else None


def _name_from_path(path: str) -> Optional[str]:
    """标题不可用时，取URL路径中最长的有意义片段"""
    best = None
    for segment in path.split('/'):
        if len(segment) <= 3 or segment.isdigit():
            continue
        decoded = re.sub(r'[-_]', ' ', unquote(segment))
        if len(decoded) >= 3 and (best is None or len(decoded) > len(best)):
            best = decoded
    return best


def generate_novel_id(url: str, title: Optional[str] = None) -> Optional[str]:
    """根据页面URL和标题生成小说标识

    Returns:
        Optional[str]: 形如 ``domain_novel_name`` 的标识，无法生成时返回 None
    """
    if not url or not isinstance(url, str):
        logger.warning("生成小说标识时URL无效")
        return None

    parsed = urlparse(url)
    if not parsed.hostname:
        logger.warning(f"无法解析URL: {url}")
        return None

    domain = re.sub(r'^www\.', '', parsed.hostname)

    novel_name = None
    if title and title.strip():
        novel_name = _clean_title(title)
    if not novel_name:
        novel_name = _name_from_path(parsed.path)
    if not novel_name:
        logger.warning("无法从标题或URL中提取小说名")
        return None

    novel_id = f"{domain}__{novel_name}".lower()
    novel_id = re.sub(r'[^\w]', '_', novel_id, flags=re.ASCII)
    novel_id = re.sub(r'_+', '_', novel_id).strip('_')
    return novel_id[:50]


def atomic_write_text(file_path: Union[str, Path], content: str, encoding: str = 'utf-8') -> None:
    """先写同目录临时文件再替换，中途失败不会留下半个文件

    Raises:
        OSError: 写入或替换失败（临时文件会被删除）
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path = tempfile.mkstemp(suffix='.tmp', prefix=file_path.name + '_', dir=file_path.parent)
    try:
        with os.fdopen(temp_fd, 'w', encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, file_path)
    except OSError as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        logger.error(f"写入文件失败: {file_path}, 错误: {e}")
        raise
    logger.debug(f"已写入: {file_path}")


def atomic_write_json(file_path: Union[str, Path], data: Dict[str, Any], indent: int = 2) -> None:
    atomic_write_text(file_path, json.dumps(data, ensure_ascii=False, indent=indent))


def safe_read_json(file_path: Union[str, Path],
                   default: Optional[Dict[str, Any]] = None,
                   backup_on_corruption: bool = True) -> Dict[str, Any]:
    """读取JSON对象文件

    文件不存在、内容损坏或顶层不是对象时返回 default；损坏的文件先备份为
    *.corrupt_<时间戳>，下次保存时会被覆盖。
    """
    file_path = Path(file_path)
    fallback = default if default is not None else {}
    if not file_path.exists():
        return fallback

    try:
        data = json.loads(file_path.read_text(encoding='utf-8'))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"JSON文件损坏: {file_path}, 错误: {e}")
        if backup_on_corruption:
            backup_path = file_path.with_suffix(f'.corrupt_{datetime.now().strftime("%Y%m%d_%H%M%S")}')
            try:
                shutil.copy2(file_path, backup_path)
                logger.info(f"损坏的文件已备份: {backup_path}")
            except OSError as backup_error:
                logger.warning(f"备份损坏文件失败: {backup_error}")
        return fallback

    if not isinstance(data, dict):
        logger.warning(f"JSON文件顶层不是对象，忽略: {file_path}")
        return fallback
    return data


def safe_read_text(file_path: Union[str, Path],
                   encoding: str = 'utf-8',
                   fallback_encodings: Optional[List[str]] = None) -> str:
    """按 encoding、fallback_encodings 的顺序尝试解码小说文本

    Raises:
        FileNotFoundError: 文件不存在
        UnicodeDecodeError: 所有编码都失败
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"文件不存在: {file_path}")

    raw = file_path.read_bytes()
    encodings = [encoding, *(fallback_encodings or [])]
    last_error: Optional[UnicodeDecodeError] = None
    for enc in encodings:
        try:
            content = raw.decode(enc)
        except UnicodeDecodeError as e:
            last_error = e
            continue
        if enc != encoding:
            logger.info(f"{file_path} 不是 {encoding} 编码，已按 {enc} 读取")
        return content

    raise UnicodeDecodeError(
        last_error.encoding if last_error else encoding,
        raw,
        last_error.start if last_error else 0,
        last_error.end if last_error else 1,
        f"无法使用任何编码读取文件: {', '.join(encodings)}",
    )


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """截断过长的文本（日志预览和模型给出的证据）"""
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
