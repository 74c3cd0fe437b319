"""Run the webhook server: ``python -m chainnote``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "chainnote.app:create_app",
        factory=True,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "10000")),
    )


if __name__ == "__main__":
    main()
