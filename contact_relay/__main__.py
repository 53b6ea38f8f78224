import uvicorn

from contact_relay.config import settings


def main():
    uvicorn.run("contact_relay.main:app", host="0.0.0.0", port=settings.APP_PORT)


if __name__ == "__main__":
    main()
