from pathlib import Path
import json, sys

from authsvc.core.crypto import load_public_key, public_jwk

# Publica la clave del emisor como JWKS (misma forma que /.well-known/jwks.json)
path = Path(sys.argv[1] if len(sys.argv) > 1 else "keys/issuer_public.pem")
alg = sys.argv[2] if len(sys.argv) > 2 else "RS256"
jwk = public_jwk(load_public_key(path))
print(json.dumps({"keys": [{**jwk, "alg": alg}]}, indent=2))
