"""
Application entry point
Starts the record service
"""
import config
from app import create_app

# Create the Flask application
app = create_app()

if __name__ == '__main__':
    app.logger.info(f"Starting record service on {config.SERVER_HOST}:{config.SERVER_PORT}")
    app.logger.info(f"Debug mode: {config.SERVER_DEBUG}")

    app.run(
        host=config.SERVER_HOST,
        port=config.SERVER_PORT,
        debug=config.SERVER_DEBUG,
        threaded=True
    )
