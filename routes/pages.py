# routes/pages.py
import logging

from flask import Blueprint, Response, current_app, render_template

from routes.forms import SubscriptionForm
from services.context import get_services

pages_bp = Blueprint('pages', __name__)
logger = logging.getLogger(__name__)


@pages_bp.route('/')
def index():
    """Landing page showing the current exchange rate verdict"""
    logger.info("Fetching exchange rate...")
    rate_message = get_services().cycle.current_message()
    return render_template('index.html', rate_message=rate_message, form=SubscriptionForm())


@pages_bp.route('/about')
def about():
    return render_template('about.html')


@pages_bp.route('/tool')
def tool():
    return render_template('tool.html')


@pages_bp.route('/contact')
def contact():
    return render_template('contact.html')


@pages_bp.route('/disclaimer')
def disclaimer():
    return render_template('disclaimer.html')


@pages_bp.route('/robots.txt')
def robots_txt():
    body = (
        "User-agent: *\n"
        "Disallow:\n"
        "\n"
        f"Sitemap: {current_app.config['SITEMAP_URL']}"
    )
    return Response(body, mimetype='text/plain')
