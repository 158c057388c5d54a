import os
from letsvibe.app import create_app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 8888))
    app.socketio.run(app, host="0.0.0.0", port=port, debug=False, allow_unsafe_werkzeug=True)
