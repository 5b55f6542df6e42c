import logging
import os
import threading
from typing import Dict, List, Optional

import pandas as pd
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from analysis.ranking import RankingMethod
from data.database import TallyDatabase
from data.post_loader import PostLoader
from tally.options import PartitionMode, QuestOptions
from tally.storage import StorageEntry
from tally.tally import VoteTally
from votes.vote_line import MarkerType

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Quest Vote Tally",
    description="Vote tallying service for forum quest threads",
)

# Global database path; results are only persisted when one is set
db_path = None

# Tallies by quest name
quests: Dict[str, VoteTally] = {}
_running = set()
_quests_lock = threading.Lock()


class PostRecord(BaseModel):
    """One extracted forum post."""

    author: str
    post_id: str
    post_number: int = 0
    text: str
    thread_uri: str = ""
    timestamp: Optional[str] = None


class TallyRequest(BaseModel):
    """Posts to tally plus quest options."""

    posts: List[PostRecord] = Field(default_factory=list)
    options: dict = Field(default_factory=dict)
    keep_merges: bool = True


class MergeRequest(BaseModel):
    first: int
    second: int
    keep: Optional[int] = None


class JoinRequest(BaseModel):
    voters: List[str]
    into: int


class DeleteRequest(BaseModel):
    index: int


class RepartitionRequest(BaseModel):
    partition_mode: str


@app.on_event("startup")
async def startup_event():
    """Pick up the database path from the environment if set."""
    global db_path
    env_path = os.environ.get("QUEST_TALLY_DATABASE_PATH")
    if env_path and not db_path:
        db_path = env_path
    logger.info("Starting Quest Vote Tally")


def get_database() -> TallyDatabase:
    global db_path
    if not db_path:
        raise HTTPException(status_code=500, detail="Database not configured")
    return TallyDatabase(db_path)


def set_database_path(path: str):
    """Set the database path for the application."""
    global db_path
    db_path = path
    logger.info(f"Database path set to: {path}")


def get_tally(quest: str) -> VoteTally:
    tally = quests.get(quest)
    if tally is None:
        raise HTTPException(status_code=404, detail=f"Quest not found: {quest}")
    return tally


def entry_record(index: int, entry: StorageEntry) -> dict:
    return {
        "index": index,
        "category": entry.category.name,
        "task": entry.task,
        "content": entry.block.to_text(include_marker=False),
        "supporters": len(entry.supporters),
        "voters": [origin.name for origin in entry.supporters],
    }


def entry_at(tally: VoteTally, index: int) -> StorageEntry:
    entries = tally.votes()
    if index < 0 or index >= len(entries):
        raise HTTPException(status_code=400, detail=f"No vote at index {index}")
    return entries[index]


def frame_records(frame: pd.DataFrame) -> list:
    return frame.to_dict("records")


@app.get("/api/health")
async def health():
    return {"status": "ok", "quests": len(quests), "database": bool(db_path)}


@app.get("/api/quests")
async def list_quests():
    return sorted(quests)


@app.post("/api/quests/{quest}/tally")
def run_tally(quest: str, request: TallyRequest):
    """
    Tally a batch of posts for a quest, replacing any earlier result.

    Merges, joins and deletes made on the earlier result are replayed unless
    keep_merges is false.
    """
    try:
        options = QuestOptions.from_dict(request.options)
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    with _quests_lock:
        if quest in _running:
            raise HTTPException(status_code=409, detail=f"Tally already running for {quest}")
        _running.add(quest)

    try:
        records = [post.model_dump() for post in request.posts]
        if db_path:
            with get_database() as database:
                loader = PostLoader(database)
                loader.load_records(records, quest)
                posts = loader.get_posts(quest)
        else:
            posts = records

        tally = VoteTally(options)
        previous = quests.get(quest)
        if previous is not None and request.keep_merges:
            tally.merge_records = previous.merge_records
        result = tally.run(posts)

        if db_path:
            with get_database() as database:
                database.save_results(quest, tally.storage.to_frame(), result.rankings_frame())

        with _quests_lock:
            quests[quest] = tally
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    finally:
        with _quests_lock:
            _running.discard(quest)

    return {
        "quest": quest,
        "status": result.status,
        "posts_counted": result.posts_counted,
        "voters": result.voters,
        "plans": result.plans,
        "passes": result.passes,
        "forced_posts": result.forced_posts,
        "votes": len(tally.storage),
        "rankings": frame_records(result.rankings_frame()),
    }


@app.get("/api/quests/{quest}/votes")
async def get_votes(quest: str, category: Optional[str] = None):
    """Canonical votes, optionally limited to one category."""
    tally = get_tally(quest)
    wanted = None
    if category:
        try:
            wanted = MarkerType[category.upper()]
        except KeyError:
            raise HTTPException(status_code=400, detail=f"Unknown category: {category}")

    return [
        entry_record(index, entry)
        for index, entry in enumerate(tally.votes())
        if wanted is None or entry.category == wanted
    ]


@app.get("/api/quests/{quest}/rankings")
async def get_rankings(quest: str, method: Optional[str] = None):
    tally = get_tally(quest)
    try:
        ranking_method = RankingMethod(method) if method else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown ranking method: {method}")

    rankings = tally.rank(ranking_method)
    return [record for ranking in rankings for record in frame_records(ranking.to_frame())]


@app.get("/api/quests/{quest}/posts")
async def get_post_status(quest: str):
    return get_tally(quest).post_status()


@app.post("/api/quests/{quest}/merge")
async def merge_votes(quest: str, request: MergeRequest):
    tally = get_tally(quest)
    first = entry_at(tally, request.first).block
    second = entry_at(tally, request.second).block
    keep = entry_at(tally, request.keep).block if request.keep is not None else None
    return {"merged": tally.merge(first, second, keep=keep)}


@app.post("/api/quests/{quest}/join")
async def join_voters(quest: str, request: JoinRequest):
    tally = get_tally(quest)
    target = entry_at(tally, request.into).block
    return {"joined": tally.join(request.voters, target)}


@app.post("/api/quests/{quest}/delete")
async def delete_vote(quest: str, request: DeleteRequest):
    tally = get_tally(quest)
    return {"deleted": tally.delete(entry_at(tally, request.index).block)}


@app.post("/api/quests/{quest}/undo")
async def undo(quest: str):
    return {"undone": get_tally(quest).undo()}


@app.post("/api/quests/{quest}/repartition")
def repartition(quest: str, request: RepartitionRequest):
    tally = get_tally(quest)
    try:
        mode = PartitionMode(request.partition_mode)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Unknown partition mode: {request.partition_mode}"
        )
    storage = tally.repartition(mode)
    return {"partition_mode": mode.value, "votes": len(storage)}


@app.get("/api/quests/{quest}/export")
async def export_votes(quest: str):
    """Canonical votes as table rows, the same shape stored in the database."""
    return frame_records(get_tally(quest).storage.to_frame())
