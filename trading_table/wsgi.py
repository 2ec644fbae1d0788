from trading_table import config, db
from trading_table.api import app   # your Flask() instance
from trading_table.session import SessionRegistry

history = None
if config.DB_ENABLED:
    db.init_db()
    history = db
app.registry = SessionRegistry(history=history)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
