from app.database import database
from conftest import auth


def test_list_only_active_stations(api, make_station):
    make_station(name="Open")
    make_station(name="Soon", is_active=False)
    r = api.get("/api/stations")
    assert r.status_code == 200
    names = [s["name"] for s in r.json()["stations"]]
    assert names == ["Open"]


def test_list_filters(api, make_station):
    make_station(name="Thamel Charge", city="Kathmandu", connector="CCS2")
    make_station(name="Lakeside Volt", city="Pokhara", lat=28.2096, lng=83.9856, connector="Type2")

    by_city = api.get("/api/stations", params={"city": "pokh"}).json()["stations"]
    assert [s["name"] for s in by_city] == ["Lakeside Volt"]

    by_connector = api.get("/api/stations", params={"connector": "ccs2"}).json()["stations"]
    assert [s["name"] for s in by_connector] == ["Thamel Charge"]

    by_text = api.get("/api/stations", params={"q": "volt"}).json()["stations"]
    assert [s["name"] for s in by_text] == ["Lakeside Volt"]


def test_list_sorted_by_distance_with_radius(api, make_station):
    make_station(name="Far", lat=28.2096, lng=83.9856)
    make_station(name="Near", lat=27.7172, lng=85.3240)
    data = api.get("/api/stations", params={"lat": 27.70, "lng": 85.32}).json()["stations"]
    assert [s["name"] for s in data] == ["Near", "Far"]
    assert data[0]["distance_km"] < data[1]["distance_km"]

    data = api.get("/api/stations", params={"lat": 27.70, "lng": 85.32, "radius_km": 10}).json()["stations"]
    assert [s["name"] for s in data] == ["Near"]


def test_station_ids_are_strings(api, station):
    s = api.get("/api/stations").json()["stations"][0]
    assert s["id"] == str(station["_id"])
    assert s["charging_ports"][0]["id"] == str(station["charging_ports"][0]["_id"])
    assert "_id" not in s


def test_along_route(api, make_station):
    make_station(name="On the way", lat=27.9, lng=84.8)
    make_station(name="Off route", lat=26.5, lng=87.3)
    route = {"coordinates": [[85.3240, 27.7172], [83.9856, 28.2096]], "corridor_km": 10}
    data = api.post("/api/stations/along-route", json=route).json()["stations"]
    assert [s["name"] for s in data] == ["On the way"]
    assert data[0]["distance_from_route_km"] <= 10


def test_along_route_rejects_bad_coordinates(api):
    r = api.post("/api/stations/along-route", json={"coordinates": [[85.3, 95.0]]})
    assert r.status_code == 400


def test_station_detail(api, station):
    r = api.get(f"/api/stations/{station['_id']}")
    assert r.status_code == 200
    assert r.json()["station"]["name"] == station["name"]
    assert api.get("/api/stations/xyz").status_code == 400
    assert api.get("/api/stations/64b7f0c2a1b2c3d4e5f60718").status_code == 404


# ==========================
# Reviews
# ==========================
def test_review_completed_booking(api, user, station, make_booking):
    booking = make_booking(user["auth_id"], station, status="completed")
    url = f"/api/stations/{station['_id']}/reviews"
    r = api.post(url, json={"booking_id": str(booking["_id"]), "rating": 4, "comment": "Fast"}, headers=auth(user))
    assert r.status_code == 201
    assert r.json()["rating"] == 4
    assert r.json()["total_reviews"] == 1

    dup = api.post(url, json={"booking_id": str(booking["_id"]), "rating": 5}, headers=auth(user))
    assert dup.status_code == 409

    reviews = api.get(url).json()["reviews"]
    assert len(reviews) == 1 and reviews[0]["comment"] == "Fast"
    saved = database.stations().find_one({"_id": station["_id"]})
    assert saved["rating"] == 4 and saved["total_reviews"] == 1


def test_rating_is_average(api, user, station, make_booking):
    url = f"/api/stations/{station['_id']}/reviews"
    for rating in (5, 4, 4):
        booking = make_booking(user["auth_id"], station, status="completed")
        api.post(url, json={"booking_id": str(booking["_id"]), "rating": rating}, headers=auth(user))
    saved = database.stations().find_one({"_id": station["_id"]})
    assert saved["rating"] == 4.3
    assert saved["total_reviews"] == 3


def test_review_rules(api, user, make_user, station, make_station, make_booking):
    url = f"/api/stations/{station['_id']}/reviews"
    pending = make_booking(user["auth_id"], station, status="pending")
    assert api.post(url, json={"booking_id": str(pending["_id"]), "rating": 3}, headers=auth(user)).status_code == 400

    theirs = make_booking(make_user()["auth_id"], station, status="completed")
    assert api.post(url, json={"booking_id": str(theirs["_id"]), "rating": 3}, headers=auth(user)).status_code == 403

    elsewhere = make_booking(user["auth_id"], make_station(name="Other"), status="completed")
    assert api.post(url, json={"booking_id": str(elsewhere["_id"]), "rating": 3}, headers=auth(user)).status_code == 400

    done = make_booking(user["auth_id"], station, status="completed")
    assert api.post(url, json={"booking_id": str(done["_id"]), "rating": 6}, headers=auth(user)).status_code == 400
    assert api.post(url, json={"booking_id": str(done["_id"]), "rating": 3}).status_code == 401
