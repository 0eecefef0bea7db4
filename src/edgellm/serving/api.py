import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security.api_key import APIKeyHeader
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.concurrency import iterate_in_threadpool
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from edgellm.errors import EdgeLLMError, InferenceError, InvalidRequestError, NotInitializedError, SessionStateError
from edgellm.metrics import PerformanceMetrics
from edgellm.schemas import GenerationResult, ModelInfo
from edgellm.serving.config import ServingConfig
from edgellm.serving.schemas import (
    ChatRequest,
    ChatResult,
    DestroyResult,
    GenerateBody,
    InitializeRequest,
    InitializeResult,
    ReconfigureRequest,
    ReconfigureResult,
)
from edgellm.serving.service import InferenceService
from edgellm.system import HardwareInfo, SystemInfo
from edgellm.utils.logging import setup_logging

config = ServingConfig()

# 配置结构化日志
setup_logging(config.log_level, json_format=config.json_logs)
logger = logging.getLogger(__name__)

# 全局推理服务
service = InferenceService()

# API Key Security Scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

_ERROR_STATUS: list[tuple[type[EdgeLLMError], int]] = [
    (InvalidRequestError, HTTP_400_BAD_REQUEST),
    (NotInitializedError, HTTP_503_SERVICE_UNAVAILABLE),
    (SessionStateError, HTTP_409_CONFLICT),
    (InferenceError, HTTP_500_INTERNAL_SERVER_ERROR),
]


async def get_api_key(
    api_key_header: str = Security(api_key_header),
):
    """验证 API Key."""
    if config.api_key:
        if api_key_header == config.api_key:
            return api_key_header
        else:
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Could not validate credentials")
    return None


@contextlib.asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    FastAPI 生命周期管理器.
    """
    logger.info("Starting up...")
    if config.autoload:
        result = await run_in_threadpool(service.initialize)
        logger.info(f"Autoload: {result.message}")
    yield
    await run_in_threadpool(service.destroy)
    logger.info("Shutting down...")


app = FastAPI(
    title="Edge LLM Inference API",
    description="On-device text generation over a single model session.",
    version="0.1.0",
    lifespan=lifespan,
)

# Prometheus Metrics
Instrumentator().instrument(app).expose(app)


@app.exception_handler(EdgeLLMError)
async def engine_error_handler(_request: Request, exc: EdgeLLMError) -> JSONResponse:
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """健康检查端点."""
    return {"status": "ok", "session": service.session.state.value}


@app.post("/initialize", response_model=InitializeResult)
async def initialize(request: InitializeRequest, _api_key: str = Depends(get_api_key)) -> InitializeResult:
    logger.info(f"Initializing model: {request.model_path or service.config.model_path}")
    return await run_in_threadpool(service.initialize, request.model_path, request.config_path)


@app.post("/generate", response_model=GenerationResult)
async def generate_text(
    request: GenerateBody, _api_key: str = Depends(get_api_key)
) -> GenerationResult | StreamingResponse:
    """
    文本生成端点. 支持流式和非流式.
    """
    if request.stream:
        # Validate state up front so errors map to a status code, not a broken stream
        if not service.session.is_ready:
            raise NotInitializedError()
        iterator = service.stream(request.prompt, max_tokens=request.max_tokens, temperature=request.temperature)
        return StreamingResponse(_stream_generator(iterator), media_type="text/event-stream")

    # 在线程池中运行以避免阻塞事件循环
    return await run_in_threadpool(
        service.generate,
        prompt=request.prompt,
        max_tokens=request.max_tokens,
        temperature=request.temperature,
    )


async def _stream_generator(iterator) -> AsyncGenerator[str]:
    """辅助生成器, 将同步的生成迭代器转换为异步流."""
    try:
        async for chunk in iterate_in_threadpool(iterator):
            yield chunk
    except EdgeLLMError as e:
        logger.error(f"Streaming generation failed: {e}")
        yield f"Error: {str(e)}"


@app.post("/chat", response_model=ChatResult)
async def chat(request: ChatRequest, _api_key: str = Depends(get_api_key)) -> ChatResult:
    return await run_in_threadpool(
        service.chat,
        request.messages,
        max_tokens=request.max_tokens,
        temperature=request.temperature,
    )


@app.get("/model-info", response_model=ModelInfo)
async def model_info() -> ModelInfo:
    return service.get_model_info()


@app.get("/metrics/performance", response_model=PerformanceMetrics)
async def performance_metrics(_api_key: str = Depends(get_api_key)) -> PerformanceMetrics:
    return service.get_performance_metrics()


@app.post("/configure", response_model=ReconfigureResult)
async def configure(request: ReconfigureRequest, _api_key: str = Depends(get_api_key)) -> ReconfigureResult:
    return service.reconfigure(**request.model_dump())


@app.post("/destroy", response_model=DestroyResult)
async def destroy(_api_key: str = Depends(get_api_key)) -> DestroyResult:
    return await run_in_threadpool(service.destroy)


@app.get("/hardware", response_model=HardwareInfo)
async def hardware() -> HardwareInfo:
    return service.check_hardware_acceleration()


@app.get("/system-info", response_model=SystemInfo)
async def system_info() -> SystemInfo:
    return service.get_system_info()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("edgellm.serving.api:app", host=config.host, port=config.port)
