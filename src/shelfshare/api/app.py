"""Flask JSON API for the marketplace."""

import logging
from typing import Optional

from flask import Flask, current_app, g, jsonify, request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from .. import __version__
from ..auth import login_optional, login_required, make_token
from ..books import AvailabilityUpdate, BookPage, BookQuery, ListingManager
from ..config import Config, get_config
from ..db.schemas import BookCreate, BookResponse, BookUpdate, UserCreate, UserPrivate, UserResponse
from ..db.sqlite import Database, get_db
from ..errors import MarketplaceError, ValidationError
from ..lending import (
    LendingManager,
    LoanCreate,
    LoanQuery,
    LoanResponse,
    LoanStatusUpdate,
    RatingCreate,
)
from ..users import LoginRequest, Token, UserManager, UserPage, UserQuery

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


def _managers() -> dict:
    return current_app.extensions["shelfshare"]


def _body() -> dict:
    """JSON request body, or an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _json(model: BaseModel, status: int = 200):
    return jsonify(model.model_dump(mode="json")), status


def _page_args(default_limit: int = 12) -> tuple[int, int]:
    page = max(request.args.get("page", 1, type=int), 1)
    limit = request.args.get("limit", default_limit, type=int)
    return page, min(max(limit, 1), MAX_PAGE_SIZE)


def _issue_token(user) -> Token:
    token = make_token(
        user.id,
        secret=current_app.config["SECRET_KEY"],
        ttl_hours=current_app.config["TOKEN_TTL_HOURS"],
    )
    return Token(access_token=token, user=UserPrivate.model_validate(user))


def _user_books(user_id: str, available_only: bool = False):
    page, limit = _page_args()
    flag = request.args.get("available_only")
    if flag is not None:
        available_only = flag.lower() in ("1", "true", "yes")
    books, pagination = _managers()["books"].list_user_books(
        user_id, available_only=available_only, page=page, limit=limit
    )
    return _json(
        BookPage(books=[BookResponse.model_validate(b) for b in books], pagination=pagination)
    )


def register_error_handlers(app: Flask) -> None:
    """Map exceptions to JSON error bodies."""

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(exc: MarketplaceError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(PydanticValidationError)
    def handle_validation_error(exc: PydanticValidationError):
        err = ValidationError.from_pydantic(exc)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"message": "Server error"}), 500


def create_app(db: Optional[Database] = None, config: Optional[Config] = None) -> Flask:
    """Create and configure the Flask application."""
    config = config or get_config()
    db = db or get_db(str(config.db_path))

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["TOKEN_TTL_HOURS"] = config.token_ttl_hours
    app.extensions["shelfshare"] = {
        "db": db,
        "users": UserManager(db),
        "books": ListingManager(db),
        "loans": LendingManager(db, cancel_policy=config.cancel_policy),
    }

    register_error_handlers(app)

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", "version": __version__})

    # ------------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------------

    @app.route("/api/auth/register", methods=["POST"])
    def register():
        data = UserCreate.model_validate(_body())
        user = _managers()["users"].register(data)
        return _json(_issue_token(user), 201)

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = LoginRequest.model_validate(_body())
        user = _managers()["users"].authenticate(data)
        return _json(_issue_token(user))

    @app.route("/api/auth/me")
    @login_required
    def me():
        return _json(UserPrivate.model_validate(g.user))

    # ------------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------------

    @app.route("/api/books", methods=["GET"])
    @login_optional
    def list_books():
        query = BookQuery.model_validate(request.args.to_dict())
        books, pagination = _managers()["books"].search_books(query)
        return _json(
            BookPage(books=[BookResponse.model_validate(b) for b in books], pagination=pagination)
        )

    @app.route("/api/books", methods=["POST"])
    @login_required
    def create_book():
        data = BookCreate.model_validate(_body())
        book = _managers()["books"].create_book(data, g.user.id)
        return _json(BookResponse.model_validate(book), 201)

    @app.route("/api/books/<book_id>", methods=["GET"])
    @login_optional
    def get_book(book_id: str):
        book = _managers()["books"].get_book(book_id)
        return _json(BookResponse.model_validate(book))

    @app.route("/api/books/<book_id>", methods=["PUT"])
    @login_required
    def update_book(book_id: str):
        data = BookUpdate.model_validate(_body())
        book = _managers()["books"].update_book(book_id, data, g.user.id)
        return _json(BookResponse.model_validate(book))

    @app.route("/api/books/<book_id>", methods=["DELETE"])
    @login_required
    def delete_book(book_id: str):
        _managers()["books"].delete_book(book_id, g.user.id)
        return jsonify({"message": "Book deleted"})

    @app.route("/api/books/<book_id>/availability", methods=["PUT"])
    @login_required
    def set_availability(book_id: str):
        data = AvailabilityUpdate.model_validate(_body())
        book = _managers()["books"].set_availability(book_id, data.is_available, g.user.id)
        return _json(BookResponse.model_validate(book))

    @app.route("/api/books/user/<user_id>")
    @login_optional
    def books_by_user(user_id: str):
        # Owners see their whole shelf, everyone else only what can be requested
        is_owner = g.user is not None and g.user.id == user_id
        return _user_books(user_id, available_only=not is_owner)

    # ------------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------------

    @app.route("/api/loans", methods=["GET"])
    @login_required
    def list_loans():
        query = LoanQuery.model_validate(request.args.to_dict())
        loans = _managers()["loans"].list_loans(g.user.id, query.role, query.status)
        return jsonify(
            {"loans": [LoanResponse.model_validate(loan).model_dump(mode="json") for loan in loans]}
        )

    @app.route("/api/loans", methods=["POST"])
    @login_required
    def create_loan():
        data = LoanCreate.model_validate(_body())
        loan = _managers()["loans"].create_loan(data, g.user.id)
        return _json(LoanResponse.model_validate(loan), 201)

    @app.route("/api/loans/<loan_id>", methods=["GET"])
    @login_required
    def get_loan(loan_id: str):
        loan = _managers()["loans"].get_loan(loan_id, g.user.id)
        return _json(LoanResponse.model_validate(loan))

    @app.route("/api/loans/<loan_id>/status", methods=["PUT"])
    @login_required
    def update_loan_status(loan_id: str):
        data = LoanStatusUpdate.model_validate(_body())
        loan = _managers()["loans"].update_status(loan_id, data, g.user.id)
        return _json(LoanResponse.model_validate(loan))

    @app.route("/api/loans/<loan_id>/rate", methods=["POST"])
    @login_required
    def rate_loan(loan_id: str):
        data = RatingCreate.model_validate(_body())
        loan = _managers()["loans"].rate_loan(loan_id, data, g.user.id)
        return _json(LoanResponse.model_validate(loan))

    # ------------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------------

    @app.route("/api/users")
    @login_optional
    def list_users():
        query = UserQuery.model_validate(request.args.to_dict())
        users, pagination = _managers()["users"].search_users(query)
        return _json(
            UserPage(users=[UserResponse.model_validate(u) for u in users], pagination=pagination)
        )

    @app.route("/api/users/<user_id>")
    @login_optional
    def get_user(user_id: str):
        return _json(_managers()["users"].get_profile(user_id))

    @app.route("/api/users/<user_id>/books")
    def user_books(user_id: str):
        _managers()["users"].require_user(user_id)
        return _user_books(user_id)

    @app.route("/api/users/<user_id>/reviews")
    def user_reviews(user_id: str):
        _managers()["users"].require_user(user_id)
        reviews = _managers()["loans"].get_reviews_for_user(user_id)
        return jsonify({"reviews": [r.model_dump(mode="json") for r in reviews]})

    @app.route("/api/users/<user_id>/verify", methods=["PUT"])
    @login_required
    def verify_user(user_id: str):
        user = _managers()["users"].verify_user(user_id, g.user.id)
        return _json(UserResponse.model_validate(user))

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the API server."""
    config = get_config()
    app = create_app(config=config)
    host = host or config.host
    port = port or config.port
    logger.info("shelfshare API listening on http://%s:%d", host, port)
    app.run(host=host, port=port, debug=debug)
