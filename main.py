"""
Terminal entrypoint: run with:
    uvicorn main:app
Configuration comes from the environment / .env (see glasstrace.core.config).
"""

from glasstrace.main import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8000)
