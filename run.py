from squares import create_app, db
from squares.models import GameScoreSnapshot
from squares.services.contest_service import contest_service

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "GameScoreSnapshot": GameScoreSnapshot,
        "contest_service": contest_service,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
