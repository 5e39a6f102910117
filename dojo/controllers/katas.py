from fastapi import APIRouter

from dojo.dependencies import Katas, KatasById
from dojo.errors import NotFoundError
from dojo.katas import build_phase_groups
from dojo.models.katas import Kata, KataListResponse

router = APIRouter(prefix="/api/katas", tags=["katas"])


@router.get("", response_model=KataListResponse)
async def list_katas(katas: Katas) -> KataListResponse:
    return KataListResponse(phases=build_phase_groups(katas))


@router.get("/{kata_id:path}", response_model=Kata)
async def get_kata(kata_id: str, katas_by_id: KatasById) -> Kata:
    kata = katas_by_id.get(kata_id)
    if kata is None:
        raise NotFoundError(detail="kata not found")
    return kata
