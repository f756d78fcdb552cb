# main.py
# 목적:
# - FastAPI 앱 구성 + app/routers 자동 등록
# - Mangum으로 Lambda 실행
# - 라우터 모듈은 ROUTER_PREFIX로 기본 prefix(모듈 경로)를 바꿀 수 있음

from __future__ import annotations

import logging
import importlib
import pkgutil
from types import ModuleType
from typing import Iterable, Tuple, List
from fastapi import FastAPI, APIRouter
from mangum import Mangum
import app.routers as routers_package
from app.core.config import OtherSettings, settings

from fastapi.middleware.cors import CORSMiddleware


def _iter_submodules(
    package: ModuleType, base_pkg_name: str
) -> Iterable[Tuple[str, ModuleType]]:
    """
    특정 “패키지 객체”를 시작점으로, 그 하위의 모든 서브모듈과 서브패키지를 재귀적으로 탐색해 import하고,
     “모듈의 전체 경로(str)”와 “모듈 객체(ModuleType)” 쌍을 순차적으로 넘겨줍니다.
    """

    if not hasattr(package, "__path__"):
        return
    for _, name, is_pkg in pkgutil.iter_modules(package.__path__):
        full = f"{base_pkg_name}.{name}"
        module = importlib.import_module(full)
        if is_pkg:
            yield from _iter_submodules(module, full)
        else:
            yield full, module


def _module_to_prefix(full_module_name: str, root_pkg: str) -> str:
    """
    루트 패키지 접두사를 잘라내고 점(.)을 슬래시(/)로 바꿉니다.
    예: app.routers.files.upload → /files/upload
    """
    trimmed = (
        full_module_name[len(root_pkg) + 1 :]
        if full_module_name.startswith(root_pkg + ".")
        else full_module_name
    )
    parts: List[str] = [p for p in trimmed.split(".") if p]
    return "/" + "/".join(parts)


def _router_prefix(module: ModuleType, full: str, root_pkg_name: str) -> str:
    """모듈에 ROUTER_PREFIX가 있으면 그 값을, 없으면 모듈 경로를 prefix로 사용합니다."""
    override = getattr(module, "ROUTER_PREFIX", None)
    if override is not None:
        # FastAPI는 "/"로 끝나는 prefix를 허용하지 않습니다.
        return override.rstrip("/")
    return _module_to_prefix(full, root_pkg_name)


def include_routers_recursive(
    app: FastAPI, root_pkg: ModuleType, root_pkg_name: str
) -> None:
    """
    루트 패키지부터 시작해 하위 모든 모듈을 재귀적으로 훑으면서,
     각 모듈에 정의된 APIRouter 인스턴스를 FastAPI 앱에 자동 등록합니다
    """
    for full, module in _iter_submodules(root_pkg, root_pkg_name):
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if isinstance(attr, APIRouter):
                prefix = _router_prefix(module, full, root_pkg_name)
                tag = full.rsplit(".", 1)[-1]
                app.include_router(attr, prefix=prefix, tags=[tag])
                logger.debug("Registered router %s.%s at '%s'", full, attr_name, prefix or "/")


logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("classinsight.app")

app = FastAPI(
    title="ClassInsight API",
    description="학급 관계 데이터를 Gemini로 분석하는 REST API. Lambda(FastAPI+Mangum).",
    version=settings.version,
)


ALLOWED_ORIGINS = OtherSettings.ALLOWED_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,  # (credentials 사용 시 구체 오리진 권장)
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=86400,
)

include_routers_recursive(app, routers_package, "app.routers")


# Lambda 핸들러
handler = Mangum(app, lifespan="off")
