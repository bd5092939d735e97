from fastapi import FastAPI

from imgopt.api.variants import router as variants_router

app = FastAPI(title="Image Variant API")
app.include_router(variants_router)
