# withdraw_abi.py

TOKEN_VAULT_ABI = [
    {
        "name": "withdrawTo",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "amount",    "type": "uint256"},
            {"name": "deadline",  "type": "uint256"},
            {"name": "signature", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "name": "getBalance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "nonces",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    # 事件 Withdraw，审计用
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True,  "name": "recipient", "type": "address"},
            {"indexed": False, "name": "amount",    "type": "uint256"},
            {"indexed": False, "name": "nonce",     "type": "uint256"},
        ],
        "name": "Withdraw",
        "type": "event",
    },
]
