import sys

from sqlmodel import create_engine

from mentalboost.config import load_config
from mentalboost.store import SessionStore

config = load_config()
store = SessionStore(create_engine(config.database_url))

def main(user_id: str):
    for record in store.query(user_id):
        print(f"{record.id}  {record.start_time:%Y-%m-%d %H:%M}  ended={record.end_time is not None}")
        print(f"emotions: {', '.join(record.emotions) or '-'}")
        if record.summary:
            print(f"summary: {record.summary}")
        for line in record.transcript:
            print(line)
            print()
        print("------------")

if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python preview.py <user-id>")
    main(sys.argv[1])
