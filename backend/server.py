"""
Cobros CRM - API Backend
Cycle de facturation: contrats, reminders, paiements, conciliations

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

import os
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import ensure_indexes
from services.errors import BillingError

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("cobros")

# Créer l'app
app = FastAPI(
    title="Cobros CRM",
    description="Back office de recouvrement: rappels, paiements, conciliations",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERREURS ====================

@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ==================== IMPORT DES ROUTES ====================

from routes import auth, clients, contracts, reminders, payments, conciliations, settings

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(clients.router, prefix="/api")
app.include_router(contracts.router, prefix="/api")
app.include_router(reminders.router, prefix="/api")
app.include_router(payments.router, prefix="/api")
app.include_router(conciliations.router, prefix="/api")
app.include_router(settings.router, prefix="/api")


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "Cobros CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP ====================

@app.on_event("startup")
async def startup():
    logger.info("Cobros CRM démarré")
    await ensure_indexes()
    logger.info("Index MongoDB créés")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
