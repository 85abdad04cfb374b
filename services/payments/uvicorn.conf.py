import os

app = "main:app"
host = "0.0.0.0"
port = int(os.getenv("PORT", "9001"))
# sqlite por defecto: un solo proceso escribe en el fichero
workers = int(os.getenv("UVICORN_WORKERS", "1"))
loop = "uvloop"  # requiere uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
