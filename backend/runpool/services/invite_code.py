import secrets, string

# excludes look-alike characters 0/O and 1/I
ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "01OI")

def generate_code(length: int = 8) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def normalize_code(raw: str) -> str:
    return raw.strip().upper().replace(" ", "").replace("-", "")
