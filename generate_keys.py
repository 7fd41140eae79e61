# generate_keys.py
# Klucz do lokalnych testów (SIMULATE_DELIVERY=true). Produkcyjny klucz .p8
# pobiera się z Apple Developer.

import sys

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization


def generate_key(path: str = "AuthKey_dev.p8") -> ec.EllipticCurvePrivateKey:
    # 1) Wygeneruj klucz prywatny P-256 (ES256)
    private_key = ec.generate_private_key(ec.SECP256R1())

    # 2) Zapisz go w formacie PEM (PKCS8, jak plik .p8 od Apple)
    priv_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    with open(path, "wb") as f:
        f.write(priv_pem)
    return private_key


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else "AuthKey_dev.p8"
    generate_key(target)
    print(f"Wygenerowano {target}")
