import argparse
import asyncio
import random
import string
import time

import httpx

from gifttracker.core.security import create_access_token


def _rand_user() -> str:
    return "loadtest_" + "".join(random.choice(string.ascii_lowercase) for _ in range(8))


def _headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, name=user_id)}"}


async def run(base_url: str, members: int, requests: int, concurrency: int) -> None:
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        owner = _headers(_rand_user())
        wl = await client.post("/wishlists", json={"name": "Load Test", "is_collaborative": True}, headers=owner)
        wishlist_id = wl.json()["id"]
        item = await client.post(f"/wishlists/{wishlist_id}/items", json={"title": "Contested"}, headers=owner)
        item_id = item.json()["id"]
        share = await client.post(f"/wishlists/{wishlist_id}/share", json={}, headers=owner)
        share_code = share.json()["share_code"]

        member_headers = []
        for _ in range(members):
            user_id = _rand_user()
            inv = await client.post(
                f"/wishlists/{wishlist_id}/invite",
                json={"email": f"{user_id}@example.com", "role": "contributor"},
                headers=owner,
            )
            headers = _headers(user_id)
            await client.put(f"/wishlist-invitations/{inv.json()['id']}/accept", headers=headers)
            member_headers.append(headers)

        # every member races for the same item; exactly one may win
        results = await asyncio.gather(
            *[client.put(f"/wishlists/{wishlist_id}/items/{item_id}/reserve", headers=h) for h in member_headers]
        )
        codes = [res.status_code for res in results]
        print(f"reserve race members={members} ok={codes.count(200)} conflict={codes.count(409)}")
        if codes.count(200) != 1:
            raise RuntimeError(f"expected exactly one winner, got {codes.count(200)}")

        latencies: list[float] = []

        async def hit() -> None:
            start = time.perf_counter()
            res = await client.get(f"/wishlists/public/{share_code}")
            latencies.append((time.perf_counter() - start) * 1000.0)
            if res.status_code != 200:
                raise RuntimeError(f"status {res.status_code}")

        pending = requests
        while pending > 0:
            batch = min(concurrency, pending)
            await asyncio.gather(*[hit() for _ in range(batch)])
            pending -= batch

        lat_sorted = sorted(latencies)
        p50 = lat_sorted[len(lat_sorted) // 2]
        p95 = lat_sorted[int(len(lat_sorted) * 0.95) - 1]
        print(f"requests={requests} concurrency={concurrency} p50_ms={p50:.2f} p95_ms={p95:.2f}")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--members", type=int, default=20)
    parser.add_argument("--requests", type=int, default=50)
    parser.add_argument("--concurrency", type=int, default=10)
    args = parser.parse_args()
    asyncio.run(run(args.base_url, args.members, args.requests, args.concurrency))


if __name__ == "__main__":
    main()
