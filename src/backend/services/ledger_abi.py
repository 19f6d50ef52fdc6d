"""
ABI fragments for the election factory and per-election contracts.

Only the functions the service calls are listed.
"""

CREATE_ELECTION_INPUTS = [
    {"internalType": "string", "name": "title", "type": "string"},
    {"internalType": "string", "name": "description", "type": "string"},
    {"internalType": "uint256", "name": "startTime", "type": "uint256"},
    {"internalType": "uint256", "name": "endTime", "type": "uint256"},
    {"internalType": "string", "name": "timezone", "type": "string"},
    {"internalType": "bool", "name": "ballotReceipt", "type": "bool"},
    {"internalType": "bool", "name": "submitConfirmation", "type": "bool"},
    {"internalType": "uint256", "name": "maxVoters", "type": "uint256"},
    {"internalType": "bool", "name": "allowVoterRegistration", "type": "bool"},
    {"internalType": "string", "name": "loginInstructions", "type": "string"},
    {"internalType": "string", "name": "voteConfirmation", "type": "string"},
    {"internalType": "string", "name": "afterElectionMessage", "type": "string"},
    {"internalType": "bool", "name": "publicResults", "type": "bool"},
    {"internalType": "bool", "name": "realTimeResults", "type": "bool"},
    {"internalType": "uint256", "name": "resultsReleaseTime", "type": "uint256"},
    {"internalType": "bool", "name": "allowResultsDownload", "type": "bool"},
]

ELECTION_FACTORY_ABI = [
    {
        "inputs": CREATE_ELECTION_INPUTS,
        "name": "createElection",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "creator", "type": "address"}],
        "name": "authorizeCreator",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "", "type": "address"}],
        "name": "authorizedCreators",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "creationFee",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

ELECTION_CORE_ABI = [
    {
        "inputs": [],
        "name": "startElection",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "isElectionActive",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        # Second array holds each voter's secret hash
        "inputs": [
            {"internalType": "string[]", "name": "voterIds", "type": "string[]"},
            {"internalType": "string[]", "name": "emails", "type": "string[]"},
        ],
        "name": "batchRegisterVoterIds",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "voterId", "type": "string"}],
        "name": "isVoterIdRegistered",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "voterId", "type": "string"}],
        "name": "hasVoterIdVoted",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "voteHash", "type": "bytes32"},
            {"internalType": "string", "name": "voterId", "type": "string"},
        ],
        "name": "castVoteById",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

CAST_VOTE_SIGNATURE = "castVoteById(bytes32,string)"
