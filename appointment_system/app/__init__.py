from fastapi import FastAPI


def create_app() -> FastAPI:
    app = FastAPI(title="Appointment Scheduling Service")

    from .routes import router as main_router
    app.include_router(main_router)

    return app
