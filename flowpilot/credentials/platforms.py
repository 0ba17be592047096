"""Platform credential capabilities and secret-store alias chains."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CredentialCategory(str, Enum):
    NONE = "none"
    OPTIONAL = "optional"
    API_KEY = "api_key"
    OAUTH = "oauth"
    BOTH = "both"


class AuthMethod(str, Enum):
    OAUTH = "oauth"
    API_KEY = "api_key"
    NONE = "none"


def canonical_function(name: str) -> str:
    """``create_tweet``, ``createTweet`` and ``CreateTweet`` compare equal."""
    return name.replace("_", "").replace("-", "").lower()


class PlatformCapability(BaseModel):
    """Authentication requirements of one platform."""

    model_config = ConfigDict(frozen=True)

    category: CredentialCategory
    preferred_method: Optional[AuthMethod] = None
    functions: Dict[str, AuthMethod] = Field(default_factory=dict)

    def requirement_for(self, function: str) -> Optional[AuthMethod]:
        """Per-function override, or ``None`` when the function is not listed."""
        wanted = canonical_function(function)
        for name, method in self.functions.items():
            if canonical_function(name) == wanted:
                return method
        return None


def _cap(category: str, preferred: Optional[str] = None, **functions: str) -> PlatformCapability:
    return PlatformCapability(
        category=CredentialCategory(category),
        preferred_method=AuthMethod(preferred) if preferred else None,
        functions={name: AuthMethod(method) for name, method in functions.items()},
    )


def _all(method: str, *names: str) -> Dict[str, str]:
    return {name: method for name in names}


PLATFORM_CAPABILITIES: Dict[str, PlatformCapability] = {
    # no credentials
    **{
        name: _cap("none")
        for name in (
            "rss", "http", "scraper", "web-scraper", "datetime", "filesystem",
            "csv", "json", "json-transform", "text", "compression", "encryption",
            "xml", "pdf", "image",
        )
    },
    # optional
    "reddit": _cap(
        "optional",
        "oauth",
        getSubredditPosts="none",
        **_all(
            "oauth", "submitPost", "commentOnPost", "replyToComment",
            "searchPosts", "upvotePost", "downvotePost",
        ),
    ),
    # oauth or api key
    "youtube": _cap(
        "both",
        "api_key",
        **_all(
            "api_key", "searchVideos", "getVideoDetails", "getChannelDetails",
            "getVideoComments", "getRecentVideos", "getComment",
        ),
        **_all(
            "oauth", "postComment", "replyToComment", "deleteComment",
            "markCommentAsSpam", "setCommentModerationStatus",
        ),
    ),
    "twitter": _cap(
        "both",
        "api_key",
        **_all(
            "api_key", "createTweet", "replyToTweet", "createThread",
            "getUserTimeline", "searchTweets",
        ),
    ),
    "github": _cap(
        "both",
        "api_key",
        getTrendingRepositories="none",
        **_all(
            "api_key", "createIssue", "createPullRequest", "searchRepositories",
            "getRepository", "listIssues", "listPullRequests", "createRelease",
            "addIssueComment",
        ),
    ),
    "google-sheets": _cap(
        "both", "api_key",
        **_all("api_key", "getRows", "addRow", "updateRow", "deleteRow", "clearSheet"),
    ),
    "google-calendar": _cap(
        "both", "oauth",
        **_all("oauth", "listEvents", "createEvent", "updateEvent", "deleteEvent", "getEvent"),
    ),
    "notion": _cap(
        "both", "api_key",
        **_all("api_key", "queryDatabase", "createPage", "updatePage", "getPage", "getDatabase"),
    ),
    "airtable": _cap(
        "both", "api_key",
        **_all("api_key", "listRecords", "createRecord", "updateRecord", "deleteRecord", "getRecord"),
    ),
    "hubspot": _cap(
        "both", "api_key",
        **_all(
            "api_key", "createContact", "updateContact", "getContact",
            "searchContacts", "createDeal", "updateDeal",
        ),
    ),
    "salesforce": _cap(
        "both", "oauth",
        **_all("oauth", "query", "createRecord", "updateRecord", "deleteRecord", "getRecord"),
    ),
    "slack": _cap(
        "both", "api_key",
        **_all(
            "api_key", "postMessage", "postToChannel", "updateMessage",
            "deleteMessage", "addReaction", "getChannelHistory",
        ),
    ),
    "discord": _cap(
        "both", "api_key",
        **_all(
            "api_key", "sendMessage", "editMessage", "deleteMessage",
            "addReaction", "createChannel", "sendEmbed",
        ),
    ),
    "stripe": _cap(
        "both", "api_key",
        **_all(
            "api_key", "createCustomer", "createPaymentIntent",
            "createSubscription", "retrieveCustomer", "listCustomers",
        ),
    ),
    "google-drive": _cap(
        "both", "api_key",
        **_all("api_key", "listFiles", "uploadFile", "deleteFile", "getFile"),
    ),
    "microsoft-teams": _cap("both", "api_key", sendMessage="api_key"),
    # oauth only
    "twitter-oauth": _cap(
        "oauth", **_all("oauth", "createTweet", "replyToTweet", "createThread")
    ),
    **{
        name: _cap("oauth", "oauth")
        for name in (
            "gohighlevel", "gmail", "outlook", "instagram", "tiktok",
            "linkedin", "facebook", "calendar",
        )
    },
    # api key only
    **{
        name: _cap("api_key")
        for name in (
            "openai", "anthropic", "openrouter", "cohere", "huggingface",
            "replicate", "telegram", "resend", "sendgrid", "twilio", "mongodb",
            "postgresql", "mysql", "rapidapi", "elevenlabs", "runway", "heygen",
            "synthesia", "cloudinary", "hunter", "apollo", "clearbit",
            "google-analytics", "algolia", "mailchimp", "linear", "typeform",
            "calendly", "figma", "tavily", "brave",
        )
    },
}

DEFAULT_CAPABILITY = PlatformCapability(category=CredentialCategory.API_KEY)

# Ordered secret-store keys checked for OAuth tokens, newest naming first.
OAUTH_ALIAS_CHAINS: Dict[str, List[str]] = {
    "twitter": ["twitter_oauth2", "twitter_oauth", "twitter"],
    "twitter-oauth": ["twitter_oauth2", "twitter_oauth", "twitter"],
    "youtube": ["youtube_oauth", "youtube"],
    "github": ["github_oauth", "github"],
    "google-sheets": ["googlesheets_oauth", "googlesheets", "google-sheets"],
    "google-calendar": ["googlecalendar_oauth", "googlecalendar", "google-calendar"],
    "google-drive": ["googledrive_oauth", "googledrive", "google-drive"],
    "notion": ["notion_oauth", "notion"],
    "airtable": ["airtable_oauth", "airtable"],
    "hubspot": ["hubspot_oauth", "hubspot"],
    "salesforce": ["salesforce_oauth", "salesforce"],
    "slack": ["slack_oauth", "slack"],
    "discord": ["discord_oauth", "discord"],
    "stripe": ["stripe_connect", "stripe"],
    "reddit": ["reddit_oauth", "reddit"],
    "gmail": ["gmail", "google"],
    "calendar": ["googlecalendar_oauth", "googlecalendar", "calendar"],
}

# Alternate keys for API-key style secrets, checked after the exact reference.
API_KEY_ALIASES: Dict[str, List[str]] = {
    "youtube": ["youtube_apikey", "youtube_api_key", "youtube"],
    "google-sheets": ["googlesheets_serviceaccount", "googlesheets"],
    "google-calendar": ["googlecalendar_serviceaccount", "googlecalendar"],
    "salesforce": ["salesforce_jwt", "salesforce"],
    "rapidapi": ["rapidapi_api_key", "rapidapi"],
    "openai": ["openai_api_key", "openai"],
    "anthropic": ["anthropic_api_key", "anthropic"],
    "openrouter": ["openrouter_api_key", "openrouter"],
}

# Longest suffixes first so ``_access_token`` wins over ``_token``.
CREDENTIAL_SUFFIXES = (
    "_access_token",
    "_refresh_token",
    "_api_key",
    "_apikey",
    "_secret",
    "_token",
    "_key",
)


def base_platform(reference: str) -> str:
    """Normalise a credential reference name to its base platform."""
    name = reference.strip().lower()
    for suffix in CREDENTIAL_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            name = name[: -len(suffix)]
            break
    if name.startswith("rapidapi-"):
        return "rapidapi"
    return name


def get_platform_capability(platform: str) -> PlatformCapability:
    """Return the platform's capability record; unknown platforms need an API key."""
    return PLATFORM_CAPABILITIES.get(platform, DEFAULT_CAPABILITY)


def oauth_chain(platform: str) -> List[str]:
    return OAUTH_ALIAS_CHAINS.get(platform, [f"{platform}_oauth", platform])


def api_key_chain(reference: str, platform: str) -> List[str]:
    """Exact reference first, then platform aliases, without duplicates."""
    keys = [reference]
    for key in API_KEY_ALIASES.get(platform, [platform]):
        if key not in keys:
            keys.append(key)
    return keys
