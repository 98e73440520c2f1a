"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py init-db
    flask --app run.py create-admin --email admin@example.com
    flask --app run.py --debug run

"""

from sitetrack import create_app

# WSGI application object used by `flask run` and production servers.
app = create_app()

if __name__ == "__main__":
    # Dev only; use `flask run` or a WSGI server instead.
    app.run(debug=True)
