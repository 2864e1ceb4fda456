from datetime import date

HEADERS = {"X-User-Id": "1"}


async def test_health(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_user_header_is_required(client):
    response = await client.get("/api/challenges")
    assert response.status_code == 401


async def test_episode_toggle(client, catalog):
    series, episodes = await catalog.series(seasons=(3,))

    response = await client.post(
        f"/api/series/{series.id}/episodes",
        json={"episodeId": episodes[2].id, "watched": True},
        headers=HEADERS
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "watching"
    assert data["hasPreviousUnwatched"] is True
    assert data["previousUnwatchedCount"] == 2
    assert data["completedChallenges"] == []

    response = await client.post(
        f"/api/series/{series.id}/episodes",
        json={"episodeId": episodes[2].id, "watched": True, "markPrevious": True},
        headers=HEADERS
    )
    assert response.json()["status"] == "watched"

    response = await client.get(f"/api/series/{series.id}/episodes", headers=HEADERS)
    listing = response.json()
    assert listing["progress"] == {"total": 3, "watched": 3, "percentage": 100}
    assert [e["displayNumber"] for e in listing["seasons"][0]["episodes"]] == [
        "S01 - E001", "S01 - E002", "S01 - E003"
    ]
    assert all(e["isWatched"] for e in listing["seasons"][0]["episodes"])


async def test_episode_toggle_errors(client, catalog):
    series, episodes = await catalog.series(seasons=(2,), air_dates={(1, 2): date(2024, 6, 20)})

    response = await client.post(
        f"/api/series/{series.id}/episodes",
        json={"episodeId": episodes[1].id, "watched": True},
        headers=HEADERS
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["airDate"] == "2024-06-20"

    response = await client.post(
        f"/api/series/{series.id}/episodes",
        json={"episodeId": 9999, "watched": True},
        headers=HEADERS
    )
    assert response.status_code == 404

    response = await client.post(f"/api/series/{series.id}/episodes", json={"watched": True}, headers=HEADERS)
    assert response.status_code == 400

    response = await client.get("/api/series/9999/episodes", headers=HEADERS)
    assert response.status_code == 404


async def test_title_lifecycle(client, catalog):
    movie = await catalog.movie("Heat", genre="Crime")

    response = await client.post(
        "/api/titles",
        json={"id": movie.id, "watchedDate": "2024-03-01", "rating": 4, "review": "Tight"},
        headers=HEADERS
    )
    assert response.status_code == 200
    assert response.json()["status"] == "watched"

    entry = (await client.get(f"/api/titles/{movie.id}", headers=HEADERS)).json()
    assert entry["status"] == "watched"
    assert entry["watchedDate"] == "2024-03-01"
    assert (entry["rating"], entry["review"]) == (4, "Tight")

    response = await client.put(f"/api/titles/{movie.id}", json={"status": "dropped"}, headers=HEADERS)
    assert response.json()["status"] == "dropped"

    response = await client.put(f"/api/titles/{movie.id}", json={"status": "finished"}, headers=HEADERS)
    assert response.status_code == 422

    response = await client.delete(f"/api/titles/{movie.id}", headers=HEADERS)
    data = response.json()
    assert data["success"] is True
    assert (data["deletedWatched"], data["deletedReviews"], data["deletedEpisodes"]) == (1, 1, 0)

    entry = (await client.get(f"/api/titles/{movie.id}", headers=HEADERS)).json()
    assert entry["status"] is None

    response = await client.get("/api/titles/9999", headers=HEADERS)
    assert response.status_code == 404


async def test_challenge_flow(client, catalog):
    badge = await catalog.badge("First watch", level="silver", image_url="https://img.example.org/1.png")
    challenge = await catalog.challenge("Movie month", target_silver=1, badge_silver_id=badge.id)
    movie = await catalog.movie()

    response = await client.post(f"/api/challenges/{challenge.id}", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["message"] == "Successfully joined challenge"
    assert response.json()["completedChallenges"] == []

    response = await client.post(f"/api/challenges/{challenge.id}", headers=HEADERS)
    assert response.status_code == 409

    response = await client.post(
        "/api/titles", json={"id": movie.id, "watchedDate": "2024-05-05"}, headers=HEADERS
    )
    completed = response.json()["completedChallenges"]
    assert len(completed) == 1
    assert completed[0]["challengeTitle"] == "Movie month"
    assert completed[0]["badge"]["imageRef"] == "https://img.example.org/1.png"

    items = (await client.get("/api/challenges", headers=HEADERS)).json()
    assert items[0]["id"] == challenge.id
    assert items[0]["current_tier"] == "silver"

    badges = (await client.get("/api/badges", headers=HEADERS)).json()
    assert [b["name"] for b in badges] == ["First watch"]

    response = await client.delete(f"/api/challenges/{challenge.id}", headers=HEADERS)
    assert response.json()["success"] is True

    response = await client.delete(f"/api/challenges/{challenge.id}", headers=HEADERS)
    assert response.status_code == 404

    badges = (await client.get("/api/badges", headers=HEADERS)).json()
    assert len(badges) == 1

    response = await client.get("/api/challenges/9999", headers=HEADERS)
    assert response.status_code == 404
