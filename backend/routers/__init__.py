# routers - One APIRouter per resource, mounted under /api
