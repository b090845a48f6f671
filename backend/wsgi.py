# backend/wsgi.py
# FLASK_APP entry point: python -m flask --app wsgi.py <group> <command>
from athar import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, threaded=True)
