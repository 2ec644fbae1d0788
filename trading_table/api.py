from flask import Flask, request, jsonify, current_app

from trading_table.errors import SessionError

app = Flask(__name__)

@app.errorhandler(SessionError)
def handle_session_error(exc: SessionError):
    return jsonify(error=exc.message), exc.status

def _body() -> dict:
    return request.get_json(force=True, silent=True) or {}

def _require_player(data: dict) -> str:
    pid = data.get("player_id")
    if not pid:
        raise SessionError(400, "player_id is required")
    return pid

@app.route("/tables", methods=["GET"])
def list_tables():
    return jsonify(tables=current_app.registry.list_tables()), 200

@app.route("/tables", methods=["POST"])
def create_table():
    data = _body()
    pid = _require_player(data)
    session = current_app.registry.create_table(
        data.get("name"),
        data.get("max_players", 5),
        pid,
        data.get("display_name"),
    )
    return jsonify(table_id=session.table_id,
                   table=current_app.registry.get_state(session.table_id, pid)), 201

@app.route("/tables/<table_id>", methods=["GET"])
def table_state(table_id):
    pid = request.args.get("player_id") or None
    return jsonify(current_app.registry.get_state(table_id, pid)), 200

@app.route("/tables/<table_id>/join", methods=["POST"])
def join(table_id):
    data = _body()
    pid = _require_player(data)
    current_app.registry.join_table(table_id, pid, data.get("display_name"))
    return jsonify(success=True, table=current_app.registry.get_state(table_id, pid)), 200

@app.route("/tables/<table_id>/leave", methods=["POST"])
def leave(table_id):
    pid = _require_player(_body())
    session = current_app.registry.leave_table(table_id, pid)
    if session is None:
        return jsonify(success=True, message="Table closed"), 200
    return jsonify(success=True, table=current_app.registry.get_state(table_id)), 200

@app.route("/tables/<table_id>/start", methods=["POST"])
def start(table_id):
    pid = _require_player(_body())
    current_app.registry.start_round(table_id, pid)
    return jsonify(success=True, table=current_app.registry.get_state(table_id, pid)), 200

@app.route("/tables/<table_id>/trade", methods=["POST"])
def trade(table_id):
    data = _body()
    pid = _require_player(data)
    summary = current_app.registry.submit_trade(
        table_id,
        pid,
        data.get("side"),
        data.get("price"),
        data.get("quantity", 1),
        data.get("counterparty_id"),
    )
    return jsonify(success=True, trade=summary), 200

@app.route("/tables/<table_id>/close", methods=["POST"])
def close(table_id):
    current_app.registry.close_round(table_id)
    return jsonify(success=True, table=current_app.registry.get_state(table_id)), 200

@app.route("/status", methods=["GET"])
def status():
    return jsonify(status=current_app.registry.get_status()), 200
