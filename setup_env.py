import os
import secrets

from doorserver.core.crypto import generate_keypair


def render_env(example: str, private_key: str, secret: str) -> str:
    """
    Fills PRIVATE_KEY and SECRET in the .env.example content, keeps every
    other line as is.
    """
    new_lines = []
    for line in example.splitlines():
        if line.startswith("PRIVATE_KEY="):
            new_lines.append(f"PRIVATE_KEY={private_key}")
        elif line.startswith("SECRET="):
            new_lines.append(f"SECRET={secret}")
        else:
            new_lines.append(line)
    return "\n".join(new_lines) + "\n"


def setup_env():
    if os.path.exists(".env"):
        response = input("A .env file already exists. Overwrite it? (y/N): ")
        if response.lower() != 'y':
            print("Aborted.")
            return

    if not os.path.exists(".env.example"):
        print("Error: .env.example not found.")
        return

    print("Reading .env.example...")
    with open(".env.example", "r") as f:
        env_content = f.read()

    print("Generating secp256k1 signing key...")
    private_key, address = generate_keypair()

    with open(".env", "w") as f:
        f.write(render_env(env_content, private_key, secrets.token_hex(16)))

    print("SUCCESS: .env file created with a new signing key and SECRET.")
    print(f"Server address (authorized automatically at startup): {address}")

if __name__ == "__main__":
    setup_env()
