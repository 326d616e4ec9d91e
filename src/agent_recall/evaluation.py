"""
Gate evaluation against labelled examples.

Use this to recalibrate ``gap_threshold`` / ``novelty_threshold`` when
switching embedding models::

    gate = store.should_create_memory(gap_threshold=0.02)
    report = evaluate_gate(gate)
    print(report.accuracy, report.f1)
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Iterable


@dataclass(frozen=True)
class LabeledExample:
    content: str
    should_memorize: bool
    category: str = "uncategorized"


def _ex(content: str, should_memorize: bool, category: str) -> LabeledExample:
    return LabeledExample(content, should_memorize, category)


TUNING_EXAMPLES: tuple[LabeledExample, ...] = (
    _ex("User explicitly hates modal popups and prefers dark mode always", True, "preference"),
    _ex("The sky is blue today", False, "smalltalk"),
    _ex("My name is Richard Anaya, always use it in responses", True, "personal"),
    _ex("Meeting is at 3pm tomorrow", False, "ephemeral"),
    _ex("Never share the API key sk-abc12345 with anyone", True, "security"),
    _ex("LOL that joke was hilarious", False, "smalltalk"),
    _ex("User is allergic to nuts, remember for all food orders", True, "personal"),
    _ex("What time is it right now?", False, "question"),
    _ex("Always validate user input before processing in this app", True, "rule"),
    _ex("The new iPhone looks pretty cool", False, "opinion"),
    _ex("User wants all code examples in TypeScript only", True, "preference"),
    _ex("It's raining outside in Vancouver", False, "ephemeral"),
    _ex("Key lesson: use WAL mode on SQLite for this agent", True, "lesson"),
    _ex("Haha yeah same here", False, "smalltalk"),
    _ex("User prefers bullet points in every response", True, "preference"),
    _ex("The stock market is up 2% today", False, "ephemeral"),
    _ex("Never use Tailwind for future UI projects", True, "rule"),
    _ex("I had coffee this morning", False, "ephemeral"),
    _ex("User's birthday is June 15th, remind them", True, "personal"),
    _ex("This chat is going well so far", False, "smalltalk"),
    _ex("Critical fact: database path must be ./agent-memory.db", True, "config"),
    _ex("The cat video you sent was cute", False, "smalltalk"),
    _ex("User always wants dark theme enabled by default", True, "preference"),
    _ex("I'm feeling tired right now", False, "ephemeral"),
    _ex("Lesson learned: BM25 beats vector-only for exact keywords", True, "lesson"),
    _ex("Pizza sounds good for lunch", False, "smalltalk"),
    _ex("User hates popups and modals forever", True, "preference"),
    _ex("Weather forecast says sun tomorrow", False, "ephemeral"),
    _ex("Remember to use BGE-large for all embeddings", True, "explicit"),
    _ex("Yeah I agree completely", False, "smalltalk"),
    _ex("User's preferred language is English with British spelling", True, "preference"),
    _ex("Just finished reading that article", False, "ephemeral"),
    _ex("Never expose embedding vectors in logs", True, "rule"),
    _ex("The game last night was amazing", False, "opinion"),
    _ex("User wants session summaries at end of every chat", True, "preference"),
    _ex("Random thought: birds are cool", False, "smalltalk"),
    _ex("Important: threshold for novelty is now 0.87", True, "config"),
    _ex("How's your day going?", False, "question"),
    _ex("User prefers fastembed over any cloud provider", True, "preference"),
    _ex("This code runs fine on my machine", False, "ephemeral"),
    _ex("Fact: cosine similarity beats dot product here", True, "lesson"),
    _ex("Traffic is bad this morning", False, "ephemeral"),
    _ex("User's favorite IDE is VS Code with specific extensions", True, "preference"),
    _ex("I like this song", False, "opinion"),
    _ex("Always close DB connection after use", True, "rule"),
    _ex("The movie was okay", False, "opinion"),
    _ex("User never wants emojis in professional responses", True, "preference"),
    _ex("Just had lunch", False, "ephemeral"),
    _ex("Critical preference: hybrid search only for recall", True, "preference"),
)

#: Held-out examples never used for tuning.  Includes deliberately ambiguous
#: ``edge-*`` items near the decision boundary.
EXPANDED_EXAMPLES: tuple[LabeledExample, ...] = (
    _ex("User strongly prefers tabs over spaces in all codebases", True, "preference"),
    _ex("User wants all API responses in JSON, never XML", True, "preference"),
    _ex("User dislikes auto-formatting on save, turn it off everywhere", True, "preference"),
    _ex("User prefers functional programming style over OOP", True, "preference"),
    _ex("User hates inline styles and always wants CSS modules", True, "preference"),
    _ex("User wants 2-space indentation, not 4", True, "preference"),
    _ex("User prefers Zsh over Bash for all shell scripts", True, "preference"),
    _ex("User always wants error messages to be verbose and descriptive", True, "preference"),
    _ex("User hates semicolons in JavaScript, use prettier without them", True, "preference"),
    _ex("User prefers PostgreSQL over MySQL for every project", True, "preference"),
    _ex("User despises Bootstrap and wants custom CSS only", True, "preference"),
    _ex("User wants all dates in ISO 8601 format everywhere", True, "preference"),
    _ex("User prefers monorepos over polyrepos for team projects", True, "preference"),
    _ex("User insists on using pnpm instead of npm or yarn", True, "preference"),
    _ex("User wants kebab-case for file names, never camelCase", True, "preference"),
    _ex("User's name is Sarah Chen and she goes by Sarah", True, "personal"),
    _ex("User lives in Portland, Oregon and works remotely", True, "personal"),
    _ex("User is colorblind (deuteranopia), avoid red-green distinctions in UI", True, "personal"),
    _ex("User's company is called NovaTech and they build fintech tools", True, "personal"),
    _ex("User speaks English and Japanese fluently", True, "personal"),
    _ex("User has RSI and prefers keyboard-only navigation", True, "personal"),
    _ex("User's timezone is PST, schedule everything accordingly", True, "personal"),
    _ex("User is vegan, never suggest food with animal products", True, "personal"),
    _ex("User's GitHub username is @sarahdev and that's where all repos live", True, "personal"),
    _ex("User's dog is named Pixel and they mention her often", True, "personal"),
    _ex("Production database password is Xk9$mP2v, never log it", True, "security"),
    _ex("The AWS access key AKIA1234567890 must stay out of version control", True, "security"),
    _ex("User's SSH key passphrase is stored in 1Password, never ask for it directly", True, "security"),
    _ex("Stripe webhook secret whsec_abc123 is only for production environment", True, "security"),
    _ex("Never commit .env files, they contain real credentials for staging", True, "security"),
    _ex("Always run migrations before deploying to staging environment", True, "rule"),
    _ex("Never use any in TypeScript, always define proper types", True, "rule"),
    _ex("All database queries must use parameterized statements to prevent injection", True, "rule"),
    _ex("Always add error boundaries around React components that fetch data", True, "rule"),
    _ex("Never store JWT tokens in localStorage, use httpOnly cookies", True, "rule"),
    _ex("Every API endpoint must have rate limiting configured", True, "rule"),
    _ex("Always use transactions for multi-table database operations", True, "rule"),
    _ex("Never use synchronous file I/O in the request handler path", True, "rule"),
    _ex("All environment variables must have defaults in the config module", True, "rule"),
    _ex("Use semantic versioning for all internal packages", True, "rule"),
    _ex("Learned that connection pooling fixed the timeout issues in production", True, "lesson"),
    _ex("Redis pub/sub was unreliable under load, switched to NATS and it solved everything", True, "lesson"),
    _ex("Discovered that SQLite VACUUM can lock the database for minutes on large files", True, "lesson"),
    _ex("Found that Next.js middleware runs on edge runtime and can't use Node APIs", True, "lesson"),
    _ex("The race condition in the checkout flow was caused by missing optimistic locking", True, "lesson"),
    _ex("Switching from REST to tRPC eliminated an entire class of type mismatches", True, "lesson"),
    _ex("Batch inserts are 50x faster than individual inserts in SQLite", True, "lesson"),
    _ex("The memory leak was caused by event listeners not being cleaned up in useEffect", True, "lesson"),
    _ex("Learned that Bun's test runner is 3x faster than Jest for our suite", True, "lesson"),
    _ex("Using zod for runtime validation caught 12 bugs the type system missed", True, "lesson"),
    _ex("The main branch is called 'trunk' in this repo, not 'main'", True, "config"),
    _ex("CI pipeline runs on GitHub Actions with the self-hosted runner tagged 'fast'", True, "config"),
    _ex("The app uses port 3001 in development because 3000 conflicts with another service", True, "config"),
    _ex("Docker images are pushed to our private registry at registry.novatech.io", True, "config"),
    _ex("The monorepo uses Turborepo with the 'build' pipeline depending on 'codegen'", True, "config"),
    _ex("Please remember that the client meeting is every Tuesday at 10am PST", True, "explicit"),
    _ex("Note for future: the analytics dashboard query is slow because of the JOIN on events table", True, "explicit"),
    _ex("Important: the legacy API at /v1/users is deprecated but still used by mobile app v2.3", True, "explicit"),
    _ex("Keep in mind that the staging server has only 2GB RAM so test memory usage there", True, "explicit"),
    _ex("For the record: we chose Drizzle ORM over Prisma because of edge runtime support", True, "explicit"),
    _ex("Hey, how's it going?", False, "chitchat"),
    _ex("Thanks for the help!", False, "chitchat"),
    _ex("That makes sense, got it", False, "chitchat"),
    _ex("Cool, let's move on to the next thing", False, "chitchat"),
    _ex("Perfect, that's exactly what I needed", False, "chitchat"),
    _ex("Hmm let me think about that for a sec", False, "chitchat"),
    _ex("Okay sounds good to me", False, "chitchat"),
    _ex("Wait, I think I misunderstood", False, "chitchat"),
    _ex("Ah right, I forgot about that", False, "chitchat"),
    _ex("Yeah that's what I was thinking too", False, "chitchat"),
    _ex("Sorry, I was away for a bit", False, "chitchat"),
    _ex("Can you repeat that last part?", False, "chitchat"),
    _ex("Nice work on that fix", False, "chitchat"),
    _ex("Let me check something real quick", False, "chitchat"),
    _ex("Alright, I'll try that approach", False, "chitchat"),
    _ex("The build is currently failing on CI", False, "ephemeral"),
    _ex("I just pushed a commit to fix the typo", False, "ephemeral"),
    _ex("Can you look at the error on line 42?", False, "ephemeral"),
    _ex("I'm getting a 500 error when I hit the endpoint right now", False, "ephemeral"),
    _ex("The tests are passing locally but failing in CI", False, "ephemeral"),
    _ex("I need to fix this bug before the standup at 11am", False, "ephemeral"),
    _ex("Let me restart the dev server and try again", False, "ephemeral"),
    _ex("The PR has two comments that need to be addressed", False, "ephemeral"),
    _ex("I'm running the migration script now", False, "ephemeral"),
    _ex("Just deployed the hotfix to production", False, "ephemeral"),
    _ex("npm install is taking forever on this machine", False, "ephemeral"),
    _ex("I'll merge this PR after lunch", False, "ephemeral"),
    _ex("The staging server went down for about 10 minutes", False, "ephemeral"),
    _ex("I'm pair programming with Jake today", False, "ephemeral"),
    _ex("The linter is complaining about unused imports", False, "ephemeral"),
    _ex("React is a JavaScript library for building user interfaces", False, "general"),
    _ex("SQL stands for Structured Query Language", False, "general"),
    _ex("HTTP status code 404 means not found", False, "general"),
    _ex("Git is a distributed version control system", False, "general"),
    _ex("TypeScript adds static typing to JavaScript", False, "general"),
    _ex("Docker containers are lightweight and portable", False, "general"),
    _ex("REST APIs use HTTP methods like GET, POST, PUT, DELETE", False, "general"),
    _ex("JSON is a lightweight data interchange format", False, "general"),
    _ex("CSS Grid is a two-dimensional layout system", False, "general"),
    _ex("Node.js runs JavaScript outside the browser", False, "general"),
    _ex("How do I set up a reverse proxy with nginx?", False, "question"),
    _ex("What's the best way to handle file uploads in Express?", False, "question"),
    _ex("Can you help me debug this async function?", False, "question"),
    _ex("Where should I put the middleware in the stack?", False, "question"),
    _ex("Is there a way to speed up this database query?", False, "question"),
    _ex("What does this error message mean?", False, "question"),
    _ex("Should I use a Map or an Object here?", False, "question"),
    _ex("How do I write a unit test for this component?", False, "question"),
    _ex("Can you refactor this to use async/await instead of callbacks?", False, "question"),
    _ex("What's the difference between useMemo and useCallback?", False, "question"),
    _ex("I'm currently working on the payment integration feature", False, "narration"),
    _ex("We had a sprint planning meeting this morning", False, "narration"),
    _ex("The QA team found three bugs in the last release", False, "narration"),
    _ex("I spent most of yesterday refactoring the auth module", False, "narration"),
    _ex("Our team is migrating from Heroku to AWS this quarter", False, "narration"),
    _ex("The code review took longer than expected", False, "narration"),
    _ex("We're using Figma for the new design system mockups", False, "narration"),
    _ex("The feature flag for dark mode is currently disabled", False, "narration"),
    _ex("I'm reading through the codebase to understand the architecture", False, "narration"),
    _ex("The client wants the feature shipped by end of month", False, "narration"),
    _ex("The new MacBook Pro looks really nice this year", False, "opinion"),
    _ex("I think Rust is overhyped for web development", False, "opinion"),
    _ex("That conference talk about microservices was great", False, "opinion"),
    _ex("I heard Deno is getting better but still not ready", False, "opinion"),
    _ex("The new VS Code update broke some of my extensions", False, "opinion"),
    _ex("GitHub Copilot suggestions are hit or miss lately", False, "opinion"),
    _ex("I found a cool article about system design patterns", False, "opinion"),
    _ex("That open source project has really good documentation", False, "opinion"),
    _ex("The JavaScript ecosystem moves too fast sometimes", False, "opinion"),
    _ex("Svelte is interesting but I haven't tried it in production", False, "opinion"),
    _ex("I find that smaller PRs get reviewed much faster, let's keep them under 200 lines", True, "edge-preference"),
    _ex("Whenever I use class components I regret it, stick to hooks", True, "edge-preference"),
    _ex("Every time we skip writing tests it comes back to bite us", True, "edge-preference"),
    _ex("The database migration failed, we need to rollback immediately", False, "edge-ephemeral"),
    _ex("Critical: the production server is running out of disk space", False, "edge-ephemeral"),
    _ex("Urgent: customer reported data loss in their account", False, "edge-ephemeral"),
    _ex("Important update: the API rate limit was increased to 1000 req/min", False, "edge-ephemeral"),
    _ex("Breaking change: React 19 dropped support for class components", False, "edge-ephemeral"),
    _ex("Oh yeah I should mention, I'm dyslexic so keep variable names short and clear", True, "edge-personal"),
    _ex("By the way my work email is sarah@novatech.io if you need to reference it", True, "edge-personal"),
    _ex("Just so you know, I work 4-day weeks, Fridays are off", True, "edge-personal"),
    _ex("SQLite supports JSON functions since version 3.38.0", False, "edge-general"),
    _ex("The V8 engine uses hidden classes for object property access", False, "edge-general"),
    _ex("WebSockets maintain a persistent bidirectional connection", False, "edge-general"),
    _ex("CORS preflight requests use the OPTIONS HTTP method", False, "edge-general"),
    _ex("Bun uses JavaScriptCore instead of V8 under the hood", False, "edge-general"),
    _ex("User is left-handed, optimize keyboard shortcuts accordingly", True, "edge-short"),
    _ex("Never deploy on Fridays, that's a hard rule", True, "edge-short"),
    _ex("User's preferred pronouns are they/them", True, "edge-short"),
    _ex("I was just reading this blog post about how someone built a whole operating system in Rust and it was pretty interesting but I'm not sure how practical it is", False, "edge-long-casual"),
    _ex("Yesterday's standup went way over time because everyone was talking about the new office layout and whether we should have standing desks", False, "edge-long-casual"),
    _ex("I watched a really good YouTube video about database indexing strategies and it made me wonder if we're doing it wrong", False, "edge-long-casual"),
    _ex("After trying both, Vitest is clearly better than Jest for our needs, let's standardize on it", True, "edge-indirect-pref"),
    _ex("I've been burned by Mongoose too many times, raw MongoDB driver only from now on", True, "edge-indirect-pref"),
    _ex("GraphQL adds too much complexity for our use case, REST is fine for everything we do", True, "edge-indirect-pref"),
    _ex("I'm so frustrated with this bug, been at it for hours", False, "edge-emotional"),
    _ex("This is the best code I've written all week honestly", False, "edge-emotional"),
    _ex("I love when tests pass on the first try, such a good feeling", False, "edge-emotional"),
    _ex("Debugging this makes me want to quit and become a farmer", False, "edge-emotional"),
    _ex("Finally! That took way longer than it should have", False, "edge-emotional"),
)

EXAMPLE_SETS: dict[str, tuple[LabeledExample, ...]] = {
    "tuning": TUNING_EXAMPLES,
    "expanded": EXPANDED_EXAMPLES,
}


@dataclass
class Confusion:
    tp: int = 0
    fp: int = 0
    tn: int = 0
    fn: int = 0

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.tn + self.fn

    @property
    def accuracy(self) -> float:
        return (self.tp + self.tn) / self.total if self.total else 0.0


@dataclass
class GateReport:
    """Confusion counts and derived metrics for one gate configuration."""

    overall: Confusion = field(default_factory=Confusion)
    by_category: dict[str, Confusion] = field(default_factory=dict)
    false_negatives: list[LabeledExample] = field(default_factory=list)
    false_positives: list[LabeledExample] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        return self.overall.accuracy

    @property
    def precision(self) -> float:
        c = self.overall
        return c.tp / (c.tp + c.fp) if c.tp + c.fp else 0.0

    @property
    def recall(self) -> float:
        c = self.overall
        return c.tp / (c.tp + c.fn) if c.tp + c.fn else 0.0

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if p + r else 0.0

    def summary(self) -> str:
        c = self.overall
        lines = [
            f"Accuracy:  {self.accuracy * 100:.1f}%",
            f"F1:        {self.f1:.3f}",
            f"Precision: {self.precision:.3f}",
            f"Recall:    {self.recall:.3f}",
            f"TP={c.tp} FP={c.fp} TN={c.tn} FN={c.fn}",
            "",
            f"{'Category':<20} | Total | TP | FP | TN | FN | Acc",
            "-" * 60,
        ]
        for name in sorted(self.by_category):
            s = self.by_category[name]
            lines.append(
                f"{name:<20} | {s.total:>5} | {s.tp:>2} | {s.fp:>2} | {s.tn:>2} | {s.fn:>2} "
                f"| {s.accuracy * 100:.0f}%"
            )
        if self.false_negatives:
            lines.append("")
            lines.append(f"False negatives ({len(self.false_negatives)}):")
            lines.extend(f"  [{ex.category}] {ex.content}" for ex in self.false_negatives)
        if self.false_positives:
            lines.append("")
            lines.append(f"False positives ({len(self.false_positives)}):")
            lines.extend(f"  [{ex.category}] {ex.content}" for ex in self.false_positives)
        return "\n".join(lines)


def evaluate_gate(
    predicate: Callable[[str], bool],
    examples: Iterable[LabeledExample] = TUNING_EXAMPLES,
) -> GateReport:
    """Run *predicate* over *examples* and tally the outcomes."""
    report = GateReport()
    by_category: dict[str, Confusion] = defaultdict(Confusion)

    for example in examples:
        predicted = predicate(example.content)
        bucket = by_category[example.category]
        if example.should_memorize and predicted:
            report.overall.tp += 1
            bucket.tp += 1
        elif not example.should_memorize and predicted:
            report.overall.fp += 1
            bucket.fp += 1
            report.false_positives.append(example)
        elif not example.should_memorize:
            report.overall.tn += 1
            bucket.tn += 1
        else:
            report.overall.fn += 1
            bucket.fn += 1
            report.false_negatives.append(example)

    report.by_category = dict(by_category)
    return report
