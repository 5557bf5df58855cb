from typing import Any

from fastapi import APIRouter

from judge.config import get_settings
from judge.languages import build_registry, list_languages

router = APIRouter()


@router.get("/languages")
async def languages() -> dict[str, Any]:
    return {"success": True, "data": list_languages(build_registry(get_settings()))}
