"""
Point d'entrée du serveur HTTP.

Lance l'application FastAPI avec uvicorn sur l'hôte et le port de la configuration.
"""

import uvicorn

from sipnread.app.main import app
from sipnread.core.container import container


def main():
    s = container.settings
    uvicorn.run(app, host=s.APP_HOST, port=s.APP_PORT, reload=False)


if __name__ == "__main__":
    main()
