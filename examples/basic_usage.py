import asyncio
import os
from datetime import date

from bridge_sync import RemoteConfig, SQLiteLocalStore, SyncManager, generate_dump


async def run_example():
    db_path = "example_basic.db"
    if os.path.exists(db_path):
        os.remove(db_path)

    print("--- Bridge Sync: Basic Example ---")

    # 1. Create the local tables
    with SQLiteLocalStore(db_path) as store:
        store.initialize()

        # 2. Record some local data
        store.insert_rows("projects", [
            {"id": 1, "name": "Casa Norte", "startDate": date(2024, 1, 10), "value": 150000.0},
        ])
        store.insert_rows("payrolls", [
            {"id": 1, "projectId": "1", "details": [{"workerId": 1, "amount": 500}]},
        ])

        # 3. Preview what a push would send
        sql = generate_dump(store)
        print(f"Dump is {len(sql.encode('utf-8'))} bytes")

        # 4. Point the store at a bridge and push
        async with SyncManager(store) as manager:
            manager.save_config(RemoteConfig(
                api_url=os.environ.get("BRIDGE_URL", "http://localhost:8080/api.php"),
                host="localhost",
                user="root",
                password="",
                database="obras",
            ))
            check = await manager.test_connection()
            print(f"Connection test: ok={check.ok} message={check.message}")
            if check.ok:
                pushed = await manager.push_to_remote()
                print(f"Push {'succeeded' if pushed else 'failed'}")

    print("\nExample finished. Database saved to", db_path)


if __name__ == "__main__":
    asyncio.run(run_example())
