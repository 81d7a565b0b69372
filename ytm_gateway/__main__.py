import uvicorn

from .core.config import cfg


def main():
    uvicorn.run("ytm_gateway.main:app", host=cfg.HOST, port=cfg.PORT, log_level=cfg.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
