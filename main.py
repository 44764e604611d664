import uvicorn

from ingos_api.config import Config

if __name__ == "__main__":
    config = Config()
    uvicorn.run("ingos_api:create_app", factory=True, host="0.0.0.0", port=config.PORT, reload=config.DEBUG)
