"""Profiles, follow graph, pictures, search and admin user management."""

from bson.objectid import ObjectId


class TestProfile:
    def test_get_strips_private_fields(self, client, make_user):
        alice = make_user("alice")
        resp = client.get(f"/api/users/{alice.id}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["username"] == "alice"
        assert "password" not in body
        assert "updatedAt" not in body

    def test_unknown_and_malformed_ids(self, client):
        assert client.get(f"/api/users/{ObjectId()}").status_code == 404
        assert client.get("/api/users/not-an-id").status_code == 404

    def test_update_self(self, client, make_user):
        alice = make_user("alice")
        resp = client.put(
            f"/api/users/{alice.id}",
            json={"city": "Lisbon", "description": "hi"},
            headers=alice.headers,
        )
        assert resp.status_code == 200
        assert resp.json()["city"] == "Lisbon"

    def test_update_other_forbidden(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        resp = client.put(f"/api/users/{bob.id}", json={"city": "Oslo"}, headers=alice.headers)
        assert resp.status_code == 403

    def test_admin_updates_anyone(self, client, make_user):
        root = make_user("root", admin=True)
        bob = make_user("bob")
        resp = client.put(
            f"/api/users/{bob.id}", json={"status": "inactive"}, headers=root.headers
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "inactive"

    def test_non_admin_cannot_grant_admin(self, client, make_user):
        alice = make_user("alice")
        resp = client.put(f"/api/users/{alice.id}", json={"isAdmin": True}, headers=alice.headers)
        assert resp.status_code == 403

    def test_password_update_is_rehashed(self, client, db, make_user):
        alice = make_user("alice")
        resp = client.put(
            f"/api/users/{alice.id}", json={"password": "newsecret"}, headers=alice.headers
        )
        assert resp.status_code == 200
        assert db.users.find_one({"_id": ObjectId(alice.id)})["password"] != "newsecret"

        login = client.post("/api/auth/login", json={"username": "alice", "password": "newsecret"})
        assert login.status_code == 200

    def test_update_to_taken_username_conflicts(self, client, make_user):
        alice = make_user("alice")
        make_user("bob")
        resp = client.put(f"/api/users/{alice.id}", json={"username": "bob"}, headers=alice.headers)
        assert resp.status_code == 409

    def test_empty_and_unknown_fields_rejected(self, client, make_user):
        alice = make_user("alice")
        assert client.put(f"/api/users/{alice.id}", json={}, headers=alice.headers).status_code == 400
        resp = client.put(f"/api/users/{alice.id}", json={"followers": []}, headers=alice.headers)
        assert resp.status_code == 400

    def test_update_self_by_uppercase_id(self, client, make_user):
        alice = make_user("alice")
        resp = client.put(
            f"/api/users/{alice.id.upper()}", json={"city": "Porto"}, headers=alice.headers
        )
        assert resp.status_code == 200
        assert resp.json()["city"] == "Porto"

    def test_update_requires_token(self, client, make_user):
        alice = make_user("alice")
        assert client.put(f"/api/users/{alice.id}", json={"city": "x"}).status_code == 401


class TestDelete:
    def test_delete_self(self, client, db, make_user):
        alice = make_user("alice")
        resp = client.delete(f"/api/users/{alice.id}", headers=alice.headers)
        assert resp.status_code == 200
        assert db.users.count_documents({}) == 0

    def test_delete_other_forbidden(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        assert client.delete(f"/api/users/{bob.id}", headers=alice.headers).status_code == 403

    def test_admin_deletes_anyone(self, client, make_user):
        root = make_user("root", admin=True)
        bob = make_user("bob")
        assert client.delete(f"/api/users/{bob.id}", headers=root.headers).status_code == 200
        assert client.get(f"/api/users/{bob.id}").status_code == 404

    def test_posts_are_kept(self, client, db, make_user, make_post):
        alice = make_user("alice")
        make_post(alice)
        client.delete(f"/api/users/{alice.id}", headers=alice.headers)
        assert db.posts.count_documents({"userId": alice.id}) == 1


class TestFollow:
    def test_follow_updates_both_sides(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        resp = client.put(f"/api/users/{bob.id}/follow", headers=alice.headers)
        assert resp.status_code == 200
        assert resp.json()["message"] == "User bob has been followed"

        assert client.get(f"/api/users/{bob.id}").json()["followers"] == [alice.id]
        assert client.get(f"/api/users/{alice.id}").json()["followings"] == [bob.id]

    def test_follow_twice_keeps_single_entry(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        client.put(f"/api/users/{bob.id}/follow", headers=alice.headers)
        resp = client.put(f"/api/users/{bob.id}/follow", headers=alice.headers)
        assert resp.status_code == 403
        assert client.get(f"/api/users/{bob.id}").json()["followers"] == [alice.id]

    def test_follow_self_forbidden(self, client, make_user):
        alice = make_user("alice")
        assert client.put(f"/api/users/{alice.id}/follow", headers=alice.headers).status_code == 403
        assert client.get(f"/api/users/{alice.id}").json()["followers"] == []

    def test_follow_unknown_user(self, client, make_user):
        alice = make_user("alice")
        resp = client.put(f"/api/users/{ObjectId()}/follow", headers=alice.headers)
        assert resp.status_code == 404

    def test_retry_completes_half_applied_follow(self, client, db, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        # only the first of the two writes landed
        db.users.update_one({"_id": ObjectId(bob.id)}, {"$push": {"followers": alice.id}})

        resp = client.put(f"/api/users/{bob.id}/follow", headers=alice.headers)
        assert resp.status_code == 403
        assert client.get(f"/api/users/{alice.id}").json()["followings"] == [bob.id]

    def test_uppercase_own_id_is_still_self(self, client, make_user):
        alice = make_user("alice")
        resp = client.put(f"/api/users/{alice.id.upper()}/follow", headers=alice.headers)
        assert resp.status_code == 403
        profile = client.get(f"/api/users/{alice.id}").json()
        assert profile["followers"] == [] and profile["followings"] == []

    def test_followings_store_canonical_ids(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        resp = client.put(f"/api/users/{bob.id.upper()}/follow", headers=alice.headers)
        assert resp.status_code == 200
        assert client.get(f"/api/users/{alice.id}").json()["followings"] == [bob.id]

        resp = client.put(f"/api/users/{bob.id.upper()}/unfollow", headers=alice.headers)
        assert resp.status_code == 200
        assert client.get(f"/api/users/{alice.id}").json()["followings"] == []

    def test_unfollow(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        client.put(f"/api/users/{bob.id}/follow", headers=alice.headers)
        resp = client.put(f"/api/users/{bob.id}/unfollow", headers=alice.headers)
        assert resp.status_code == 200
        assert client.get(f"/api/users/{bob.id}").json()["followers"] == []
        assert client.get(f"/api/users/{alice.id}").json()["followings"] == []

    def test_unfollow_when_not_following(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        assert client.put(f"/api/users/{bob.id}/unfollow", headers=alice.headers).status_code == 403

    def test_unfollow_self_forbidden(self, client, make_user):
        alice = make_user("alice")
        assert client.put(f"/api/users/{alice.id}/unfollow", headers=alice.headers).status_code == 403

    def test_follower_listings(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        client.put(f"/api/users/{bob.id}/follow", headers=alice.headers)

        followers = client.get(f"/api/users/{bob.id}/followers").json()
        assert [f["username"] for f in followers] == ["alice"]
        followings = client.get(f"/api/users/{alice.id}/followings").json()
        assert [f["id"] for f in followings] == [bob.id]


class TestSearch:
    def test_case_insensitive_substring(self, client, make_user):
        alice = make_user("alice")
        make_user("malice")
        make_user("bob")
        resp = client.get("/api/users/search", params={"username": "ALI"}, headers=alice.headers)
        assert resp.status_code == 200
        results = resp.json()
        assert sorted(u["username"] for u in results) == ["alice", "malice"]
        for user in results:
            assert "password" not in user
            assert "id" not in user

    def test_regex_characters_are_literal(self, client, make_user):
        alice = make_user("alice")
        resp = client.get("/api/users/search", params={"username": ".*"}, headers=alice.headers)
        assert resp.json() == []

    def test_term_required(self, client, make_user):
        alice = make_user("alice")
        assert client.get("/api/users/search", headers=alice.headers).status_code == 400

    def test_requires_token(self, client):
        assert client.get("/api/users/search", params={"username": "a"}).status_code == 401


class TestPictures:
    def test_profile_picture_upload(self, client, make_user, upload_dir, sample_image_bytes):
        alice = make_user("alice")
        resp = client.put(
            f"/api/users/{alice.id}/profile-picture",
            files={"image": ("me.png", sample_image_bytes, "image/png")},
            headers=alice.headers,
        )
        assert resp.status_code == 200
        path = resp.json()["profilePicture"]
        assert path.startswith("/uploads/") and path.endswith(".png")
        assert (upload_dir / path.rsplit("/", 1)[1]).exists()

        served = client.get(path)
        assert served.status_code == 200
        assert served.content == sample_image_bytes

    def test_replacing_cover_removes_old_file(self, client, make_user, upload_dir, sample_image_bytes):
        alice = make_user("alice")
        first = client.put(
            f"/api/users/{alice.id}/cover-picture",
            files={"image": ("a.png", sample_image_bytes, "image/png")},
            headers=alice.headers,
        ).json()["coverPicture"]
        second = client.put(
            f"/api/users/{alice.id}/cover-picture",
            files={"image": ("b.png", sample_image_bytes, "image/png")},
            headers=alice.headers,
        ).json()["coverPicture"]
        assert first != second
        assert not (upload_dir / first.rsplit("/", 1)[1]).exists()
        assert (upload_dir / second.rsplit("/", 1)[1]).exists()

    def test_non_image_rejected(self, client, make_user, upload_dir):
        alice = make_user("alice")
        resp = client.put(
            f"/api/users/{alice.id}/profile-picture",
            files={"image": ("notes.txt", b"hello", "text/plain")},
            headers=alice.headers,
        )
        assert resp.status_code == 400
        assert not upload_dir.exists() or not any(upload_dir.iterdir())

    def test_other_users_picture_forbidden(self, client, make_user, sample_image_bytes):
        alice = make_user("alice")
        bob = make_user("bob")
        resp = client.put(
            f"/api/users/{bob.id}/profile-picture",
            files={"image": ("me.png", sample_image_bytes, "image/png")},
            headers=alice.headers,
        )
        assert resp.status_code == 403


class TestAdmin:
    def test_list_users(self, client, make_user):
        root = make_user("root", admin=True)
        make_user("alice")
        resp = client.get("/api/users", headers=root.headers)
        assert resp.status_code == 200
        users = resp.json()
        assert sorted(u["username"] for u in users) == ["alice", "root"]
        assert all("password" not in u for u in users)

    def test_list_newest(self, client, make_user):
        root = make_user("root", admin=True)
        for i in range(11):
            make_user(f"user{i:02d}")
        resp = client.get("/api/users", params={"new": "true"}, headers=root.headers)
        users = resp.json()
        assert len(users) == 10
        assert users[0]["username"] == "user10"

    def test_list_forbidden_for_regular_users(self, client, make_user):
        alice = make_user("alice")
        assert client.get("/api/users", headers=alice.headers).status_code == 403

    def test_role_edit(self, client, make_user):
        root = make_user("root", admin=True)
        alice = make_user("alice")
        resp = client.put(f"/api/users/{alice.id}/role", json={"isAdmin": True}, headers=root.headers)
        assert resp.status_code == 200
        assert resp.json()["isAdmin"] is True
        assert client.get("/api/users", headers=alice.headers).status_code == 200

    def test_role_edit_forbidden_for_regular_users(self, client, make_user):
        alice = make_user("alice")
        resp = client.put(f"/api/users/{alice.id}/role", json={"isAdmin": True}, headers=alice.headers)
        assert resp.status_code == 403
