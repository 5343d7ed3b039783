"""
FastAPI 后端接口：
- /api/message  POST 按 action 分发内部消息（modelRequest / checkAvailability / terminateAll / analyzeStyle / analyzeGender）
- /api/enhance  POST 对提交的段落启动增强会话
- /api/jobs/{job_id} GET 查询增强任务状态
- /api/health   GET 服务与模型可用性

启动方式：
  uvicorn web_api:app --reload --port 8000
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from services.enhancement_service import EnhancementService, ListOutputSink
from services.llm_service import ModelGateway
from services.messaging import MessageRouter
from services.novel_store import NovelStore
from utils import generate_novel_id

MAX_PARAGRAPHS = 2000


class MessageBody(BaseModel):
    action: str
    data: Optional[Any] = None
    cacheKey: Optional[str] = None
    force: bool = False
    name: Optional[str] = None


class EnhanceRequest(BaseModel):
    paragraphs: List[str]
    url: Optional[str] = None
    title: Optional[str] = None


@dataclass
class Job:
    id: str
    status: str = "pending"  # pending|running|success|error|terminated
    message: str = ""
    progress: float = 0.0
    result: Dict[str, Any] = field(default_factory=dict)
    paragraphs: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    def log(self, text: str) -> None:
        """Append a log line and keep list size bounded."""
        self.logs.append(text)
        if len(self.logs) > 200:
            # 只保留最近 200 条，避免内存增长过快
            self.logs = self.logs[-200:]


JOBS: Dict[str, Job] = {}

_gateway: Optional[ModelGateway] = None
_router: Optional[MessageRouter] = None


def get_gateway() -> ModelGateway:
    global _gateway
    if _gateway is None:
        _gateway = ModelGateway()
    return _gateway


def get_router() -> MessageRouter:
    global _router
    if _router is None:
        _router = MessageRouter(get_gateway())
    return _router


app = FastAPI(title="Novel Dialogue Enhancer API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health() -> Dict[str, Any]:
    status = await get_gateway().check_availability()
    return {"ok": True, "ollama": status.to_dict()}


@app.post("/api/message")
async def handle_message(body: MessageBody) -> Dict[str, Any]:
    return await get_router().handle(body.model_dump())


async def _run_job(job: Job, req: EnhanceRequest, novel_id: str):
    job.status = "running"
    job.progress = 0.0
    job.log(f"开始增强 {len(req.paragraphs)} 个段落")

    def handle_progress(info: Dict[str, Any]) -> None:
        job.progress = info.get("progress", job.progress)
        job.result["state"] = info.get("state")
        job.result["completed_units"] = info.get("completed_units", 0)
        job.result["failed_units"] = info.get("failed_units", 0)
        if info.get("last_batch") is not None:
            if info.get("last_error"):
                job.log(f"批次 {info['last_batch']} 失败: {info['last_error']}")
            else:
                job.log(f"批次 {info['last_batch']} 完成")

    sink = ListOutputSink(req.paragraphs)
    try:
        service = EnhancementService(
            gateway=get_gateway(), store=NovelStore(), progress_callback=handle_progress
        )
        session = await service.enhance(sink, novel_id=novel_id)
        job.result.update(session.get_summary())
        job.paragraphs = list(sink.units)
        job.status = {"complete": "success", "terminated": "terminated"}.get(
            session.state.value, "error"
        )
        if job.status == "error":
            job.message = session.errors[-1] if session.errors else "增强失败"
        job.log(f"会话结束: {session.state.value}")

    except Exception as e:  # noqa: BLE001
        job.status = "error"
        job.message = str(e)
        job.log(f"错误: {e}")


@app.post("/api/enhance")
async def start_enhance(req: EnhanceRequest):
    if not req.paragraphs or not any(p.strip() for p in req.paragraphs):
        raise HTTPException(status_code=400, detail="paragraphs 不能为空")
    if len(req.paragraphs) > MAX_PARAGRAPHS:
        raise HTTPException(status_code=400, detail=f"段落数不能超过 {MAX_PARAGRAPHS}")

    novel_id = (generate_novel_id(req.url, req.title) if req.url else None) or "default"
    job_id = str(uuid.uuid4())
    job = Job(id=job_id)
    JOBS[job_id] = job

    asyncio.create_task(_run_job(job, req, novel_id))
    return {"job_id": job_id, "novel_id": novel_id}


@app.get("/api/jobs/{job_id}")
def get_job(job_id: str):
    job = JOBS.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job 不存在")
    return {
        "id": job.id,
        "status": job.status,
        "message": job.message,
        "progress": job.progress,
        "result": job.result,
        "paragraphs": job.paragraphs,
        "logs": job.logs,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_api:app", host="0.0.0.0", port=8000, reload=True)
