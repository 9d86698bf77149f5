from fastapi import APIRouter, Depends

from authsvc.api.deps import get_signer
from authsvc.core.crypto import Signer

router = APIRouter()


@router.get("/jwks.json")
async def jwks(signer: Signer = Depends(get_signer)):
    # Los servidores de recursos validan firmas con esta clave sin llamar al emisor
    return signer.jwks()
