import mongomock
from pymongo.errors import PyMongoError

from cleanup import cleanup_video


def test_failing_step_does_not_stop_the_rest(ctx, db, make_user, make_video, monkeypatch):
    owner, fan = make_user(), make_user()
    video = make_video(owner)
    db["likes"].insert_one({"kind": "video", "target": video["_id"], "likedBy": fan["_id"]})
    db["comments"].insert_one({"content": "hi", "video": video["_id"], "owner": fan["_id"]})
    db["playlists"].insert_one({"name": "p", "description": "", "videos": [video["_id"]], "owner": fan["_id"]})
    db["users"].update_one({"_id": fan["_id"]}, {"$push": {"watchHistory": video["_id"]}})
    real_delete_many = mongomock.Collection.delete_many

    def flaky_delete_many(self, filter, *args, **kwargs):
        if self.name == "comments":
            raise PyMongoError("connection reset")
        return real_delete_many(self, filter, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "delete_many", flaky_delete_many)
    removed = cleanup_video(db, ctx.media, video)
    monkeypatch.undo()

    assert removed["comments"] == 0
    assert removed["videoLikes"] == 1
    assert removed["playlists"] == 1
    assert removed["watchHistory"] == 1
    assert db["comments"].count_documents({}) == 1
    assert db["playlists"].find_one({})["videos"] == []
