import uvicorn
from pfprelay.config import settings


def main():
    # No reload; the app builds its resolvers once at import
    host = settings.api_host
    port = settings.api_port
    uvicorn.run("pfprelay.api:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
