from flask import Flask, jsonify
import logging
import os
from datetime import datetime, timezone
from dotenv import load_dotenv

# Load environment variables before anything reads WP_* or AIRTABLE_*
load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
)
logger = logging.getLogger(__name__)

from activity_publisher import __version__
from activity_publisher.auth import AuthTokenManager, RenewalCredentials
from activity_publisher.services.airtable_client import AirtableClient
from activity_publisher.services.publish_orchestrator import PublishOrchestrator
from activity_publisher.services.wp_client import WordPressClient

app = Flask(__name__)
app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-key')

# Configure Flask behind a reverse proxy (X-Forwarded-* headers)
from werkzeug.middleware.proxy_fix import ProxyFix
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

# Inbound API token
app.config['API_TOKEN'] = (os.getenv('API_TOKEN') or '').strip()

# Airtable configuration
app.config['AIRTABLE_API_KEY'] = os.getenv('AIRTABLE_API_KEY', '')
app.config['AIRTABLE_BASE_ID'] = os.getenv('AIRTABLE_BASE_ID', '')
app.config['AIRTABLE_TABLE_NAME'] = os.getenv('AIRTABLE_TABLE_NAME', 'Pedagogical Outputs')
app.config['AIRTABLE_LOGS_TABLE_NAME'] = os.getenv('AIRTABLE_LOGS_TABLE_NAME', 'Event Log')

credentials = RenewalCredentials.from_env()
logger.info(f"WP_URL: {credentials.base_url or 'NOT SET'}")
logger.info(f"WP_USERNAME: {credentials.masked_username}")
logger.info(f"WP_JWT: {'SET' if credentials.static_token else 'NOT SET'}")
if not app.config['API_TOKEN']:
    logger.warning("API_TOKEN is not set; every API request will be rejected")


def build_services(config, renewal_credentials: RenewalCredentials) -> dict:
    """Wire the token manager, clients and orchestrator for one app"""
    token_manager = AuthTokenManager(renewal_credentials)
    wordpress = WordPressClient(token_manager, renewal_credentials.base_url)
    airtable = AirtableClient(
        config['AIRTABLE_API_KEY'],
        config['AIRTABLE_BASE_ID'],
        table_name=config['AIRTABLE_TABLE_NAME'],
        logs_table_name=config['AIRTABLE_LOGS_TABLE_NAME'],
    )
    return {
        'token_manager': token_manager,
        'wordpress': wordpress,
        'airtable': airtable,
        'orchestrator': PublishOrchestrator(airtable, wordpress, token_manager),
    }


app.extensions['activity_publisher'] = build_services(app.config, credentials)

# Register blueprints
from activity_publisher.routes.auth_routes import auth_bp
from activity_publisher.routes.activity_routes import activity_bp
app.register_blueprint(auth_bp)
app.register_blueprint(activity_bp)


@app.route('/health')
def health():
    """Liveness probe (no authentication)"""
    return jsonify({
        'status': 'ok',
        'version': __version__,
        'time': datetime.now(timezone.utc).isoformat(),
    })


if __name__ == '__main__':
    # Reloader would build a second token manager in the child process
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)), debug=False, use_reloader=False)
