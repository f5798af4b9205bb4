"""mockwire — call substitution and call verification for tests."""

__version__ = "0.1.0"

from mockwire.config import EngineConfig, UnhandledPolicy
from mockwire.engine import (
    EngineState,
    HookResult,
    Interceptor,
    Mocker,
    StubBuilder,
    Verifier,
)
from mockwire.errors import (
    AmbiguousMethod,
    MockwireError,
    NoMatchingMethod,
    ResolutionError,
    UnsatisfiedCallVerification,
)
from mockwire.ledger import Invocation, InvocationLedger
from mockwire.matchers import (
    AnyArg,
    Arg,
    ArgumentMatcher,
    ByRef,
    Exact,
    Predicate,
    as_matcher,
    is_matcher,
)
from mockwire.resolution import InspectResolver, MethodResolver, select_signature
from mockwire.signature import (
    MethodSignature,
    ParamSpec,
    Ref,
    is_nullable,
    type_name,
    zero_value,
)
from mockwire.stubs import Response, ResponseKind, StubRegistry, StubRule
from mockwire.verification import (
    CallPattern,
    CallSite,
    CountConstraint,
    CountKind,
    Expectation,
    GroupOutcome,
    PatternHits,
    VerificationReport,
    VerificationRequest,
    evaluate,
    render_report,
    verify,
)

__all__ = [
    # Matching
    "AnyArg",
    "Arg",
    "ArgumentMatcher",
    "ByRef",
    "Exact",
    "Predicate",
    "as_matcher",
    "is_matcher",
    # Signatures and resolution
    "InspectResolver",
    "MethodResolver",
    "MethodSignature",
    "ParamSpec",
    "Ref",
    "is_nullable",
    "select_signature",
    "type_name",
    "zero_value",
    # Ledger and stubs
    "Invocation",
    "InvocationLedger",
    "Response",
    "ResponseKind",
    "StubRegistry",
    "StubRule",
    # Verification
    "CallPattern",
    "CallSite",
    "CountConstraint",
    "CountKind",
    "Expectation",
    "GroupOutcome",
    "PatternHits",
    "VerificationReport",
    "VerificationRequest",
    "evaluate",
    "render_report",
    "verify",
    # Engine
    "EngineConfig",
    "EngineState",
    "HookResult",
    "Interceptor",
    "Mocker",
    "StubBuilder",
    "UnhandledPolicy",
    "Verifier",
    # Errors
    "AmbiguousMethod",
    "MockwireError",
    "NoMatchingMethod",
    "ResolutionError",
    "UnsatisfiedCallVerification",
]
